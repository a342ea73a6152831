"""Backend that shells out to a configured backup command.

The command runs with ``BACKUP_ID`` in its environment. It may print
``data_id=<value>`` and ``size_mb=<number>`` lines; the last occurrence of
each is stored on the backup record. Records live in the SQLite catalog under
``state_root``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from backuphook.backends.base import BackendError, BackupNotFoundError
from backuphook.backends.types import UNKNOWN_SIZE_MB, BackupRecord, BackupStatus
from backuphook.core.config import Settings
from backuphook.db.init_db import initialize_database
from backuphook.db.models import BackupEntry
from backuphook.shell.runner import CommandError, ExecutionContext, run_command

logger = logging.getLogger(__name__)


def parse_backup_output(output: str) -> tuple[str | None, float | None]:
    data_id: str | None = None
    size_mb: float | None = None
    for raw_line in output.splitlines():
        key, sep, value = raw_line.strip().partition("=")
        if not sep:
            continue
        key = key.strip().lower()
        value = value.strip()
        if key == "data_id" and value:
            data_id = value[:255]
        elif key == "size_mb":
            try:
                size_mb = float(value)
            except ValueError:
                logger.debug("Ignoring non-numeric size_mb output: %r", value)
    return data_id, size_mb


class CommandBackend:
    def __init__(self, settings: Settings, session_factory: sessionmaker[Session]):
        self._settings = settings
        self._session_factory = session_factory

    def _now(self) -> datetime:
        return datetime.now(tz=timezone.utc)

    def init(self) -> None:
        initialize_database(self._session_factory.kw.get("bind"))
        recovered = self.recover_interrupted_backups()
        if recovered:
            logger.warning("Marked %d interrupted backup(s) as error", recovered)
        if not self._settings.backup_command:
            logger.warning("No backup command configured; triggered backups will fail")

    def recover_interrupted_backups(self) -> int:
        now = self._now()
        with self._session_factory() as session:
            result = session.execute(
                update(BackupEntry)
                .where(BackupEntry.status == BackupStatus.RUNNING)
                .values(
                    status=BackupStatus.ERROR,
                    message="backup interrupted by service restart",
                    finished_at=now,
                )
            )
            session.commit()
            return int(result.rowcount or 0)

    def create_new_backup(self, backup_id: str, timeout: timedelta, context: ExecutionContext) -> None:
        command = self._settings.backup_command
        if not command:
            raise BackendError("No backup command configured")

        with self._session_factory() as session:
            session.add(
                BackupEntry(
                    id=backup_id,
                    status=BackupStatus.RUNNING,
                    message="backup is running",
                    created_at=self._now(),
                )
            )
            session.commit()

        try:
            output = run_command(command, timeout, context, env={"BACKUP_ID": backup_id})
        except CommandError as exc:
            self._finish(backup_id, status=BackupStatus.ERROR, message=str(exc))
            raise

        data_id, size_mb = parse_backup_output(output)
        self._finish(
            backup_id,
            status=BackupStatus.COMPLETED,
            message="backup completed",
            data_id=data_id or backup_id,
            size_mb=size_mb if size_mb is not None else UNKNOWN_SIZE_MB,
        )

    def _finish(
        self,
        backup_id: str,
        *,
        status: BackupStatus,
        message: str,
        data_id: str | None = None,
        size_mb: float | None = None,
    ) -> None:
        with self._session_factory() as session:
            entry = session.get(BackupEntry, backup_id)
            if entry is None:
                raise BackupNotFoundError(f"Backup {backup_id} not found")
            entry.status = status
            entry.message = message
            if data_id is not None:
                entry.data_id = data_id
            if size_mb is not None:
                entry.size_mb = size_mb
            entry.finished_at = self._now()
            session.commit()

    def delete_backup(self, backup_id: str) -> None:
        with self._session_factory() as session:
            entry = session.get(BackupEntry, backup_id)
            if entry is None:
                raise BackupNotFoundError(f"Backup {backup_id} not found")
            if entry.status == BackupStatus.DELETED:
                return
            data_id = entry.data_id

        if self._settings.delete_command:
            try:
                run_command(
                    self._settings.delete_command,
                    timedelta(seconds=self._settings.pre_post_timeout_seconds),
                    ExecutionContext(),
                    env={"BACKUP_ID": backup_id, "BACKUP_DATA_ID": data_id},
                )
            except CommandError as exc:
                raise BackendError(f"Delete command failed for backup {backup_id}: {exc}") from exc

        with self._session_factory() as session:
            entry = session.get(BackupEntry, backup_id)
            if entry is None:
                raise BackupNotFoundError(f"Backup {backup_id} not found")
            entry.status = BackupStatus.DELETED
            entry.message = "backup deleted"
            session.commit()

    def get_all_backups(self) -> list[BackupRecord]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(BackupEntry).order_by(BackupEntry.created_at.desc(), BackupEntry.id.desc())
            ).all()
            return [self._to_record(row) for row in rows]

    def get_backup(self, backup_id: str) -> BackupRecord | None:
        with self._session_factory() as session:
            entry = session.get(BackupEntry, backup_id)
            if entry is None:
                return None
            return self._to_record(entry)

    def _to_record(self, entry: BackupEntry) -> BackupRecord:
        return BackupRecord(
            id=entry.id,
            data_id=entry.data_id,
            status=entry.status,
            message=entry.message,
            size_mb=entry.size_mb,
        )
