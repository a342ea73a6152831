from __future__ import annotations

from datetime import timedelta
from typing import Protocol

from backuphook.backends.types import BackupRecord
from backuphook.shell.runner import ExecutionContext


class BackendError(RuntimeError):
    pass


class BackupNotFoundError(RuntimeError):
    pass


class Backend(Protocol):
    """Storage side of a backup. Implementations are supplied by the embedding project."""

    def init(self) -> None:
        """Called once at startup, before any other method."""
        ...

    def create_new_backup(self, backup_id: str, timeout: timedelta, context: ExecutionContext) -> None:
        """Create a backup and return only once it is complete.

        Shell commands should go through ``run_command`` with ``context`` so a
        ``DELETE /backups/{id}`` for the running backup can stop them.
        """
        ...

    def delete_backup(self, backup_id: str) -> None:
        """Remove backup data. Raises BackupNotFoundError for unknown ids."""
        ...

    def get_all_backups(self) -> list[BackupRecord]:
        ...

    def get_backup(self, backup_id: str) -> BackupRecord | None:
        ...
