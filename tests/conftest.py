from __future__ import annotations

import threading
import time
from datetime import timedelta
from pathlib import Path
from typing import Callable, Iterator

import pytest

from backuphook.backends.base import BackupNotFoundError
from backuphook.backends.types import BackupRecord, BackupStatus
from backuphook.core.config import Settings, get_settings
from backuphook.jobs.service import BackupJobService
from backuphook.shell.runner import ExecutionContext, run_command


class FakeBackend:
    """In-memory backend; optionally shells out or blocks inside create_new_backup."""

    def __init__(
        self,
        *,
        command: str | None = None,
        error: Exception | None = None,
        block: threading.Event | None = None,
    ):
        self.command = command
        self.error = error
        self.block = block
        self.init_calls = 0
        self.created: list[str] = []
        self.records: dict[str, BackupRecord] = {}
        self.entered = threading.Event()

    def init(self) -> None:
        self.init_calls += 1

    def create_new_backup(self, backup_id: str, timeout: timedelta, context: ExecutionContext) -> None:
        self.created.append(backup_id)
        self.entered.set()
        if self.block is not None:
            self.block.wait(timeout=10)
        if self.command:
            run_command(self.command, timeout, context)
        if self.error is not None:
            raise self.error
        self.records[backup_id] = BackupRecord(
            id=backup_id,
            data_id=f"data-{backup_id[:8]}",
            status=BackupStatus.COMPLETED,
            message="backup completed",
            size_mb=12.5,
        )

    def delete_backup(self, backup_id: str) -> None:
        record = self.records.get(backup_id)
        if record is None:
            raise BackupNotFoundError(f"Backup {backup_id} not found")
        record.status = BackupStatus.DELETED

    def get_all_backups(self) -> list[BackupRecord]:
        return list(self.records.values())

    def get_backup(self, backup_id: str) -> BackupRecord | None:
        return self.records.get(backup_id)


def wait_for(predicate: Callable[[], object], timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return False


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    state_root = tmp_path / "state"
    monkeypatch.setenv("BACKUPHOOK_STATE_ROOT", state_root.as_posix())
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield state_root
    get_settings.cache_clear()


@pytest.fixture
def make_service(tmp_path: Path) -> Iterator[Callable[..., BackupJobService]]:
    services: list[BackupJobService] = []

    def factory(backend: object, **overrides: object) -> BackupJobService:
        settings = Settings(state_root=tmp_path / "state", **overrides)
        service = BackupJobService(settings=settings, backend=backend)  # type: ignore[arg-type]
        services.append(service)
        return service

    yield factory

    for service in services:
        service.shutdown()
