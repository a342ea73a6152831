from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from backuphook.backends.base import Backend, BackendError, BackupNotFoundError
from backuphook.backends.types import UNKNOWN_SIZE_MB, BackupRecord, BackupStatus
from backuphook.core.config import Settings
from backuphook.jobs.slot import JobSlot
from backuphook.jobs.types import JobOutcome, JobResult, JobStage
from backuphook.shell.runner import (
    CommandError,
    CommandStoppedError,
    CommandTimeoutError,
    ExecutionContext,
    ProcessHandle,
    run_command,
)

logger = logging.getLogger(__name__)

_STAGE_LABELS = {
    JobStage.PRE_HOOK: "Pre-backup command",
    JobStage.BACKUP: "Backup",
    JobStage.POST_HOOK: "Post-backup command",
}


class BackupConflictError(RuntimeError):
    def __init__(self, running_id: str):
        super().__init__(f"Another backup id {running_id} is already running")
        self.running_id = running_id


class BackupNotRunningError(RuntimeError):
    pass


class NoRunningProcessError(RuntimeError):
    pass


class BackupCancelError(RuntimeError):
    pass


class BackupJobService:
    def __init__(self, settings: Settings, backend: Backend, *, slot: JobSlot | None = None):
        self._settings = settings
        self._backend = backend
        self._slot = slot or JobSlot()
        self._context = ExecutionContext()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="backup-pipeline")
        self._result_lock = threading.Lock()
        self._last_result: JobResult | None = None

    def _now(self) -> datetime:
        return datetime.now(tz=timezone.utc)

    def _hook_timeout(self) -> timedelta:
        return timedelta(seconds=self._settings.pre_post_timeout_seconds)

    def _backup_timeout(self) -> timedelta:
        return timedelta(seconds=self._settings.effective_backup_timeout_seconds)

    @property
    def context(self) -> ExecutionContext:
        return self._context

    def running_id(self) -> str | None:
        return self._slot.current()

    def is_running(self, backup_id: str) -> bool:
        return self._slot.is_running(backup_id)

    def last_result(self) -> JobResult | None:
        with self._result_lock:
            return self._last_result

    def wait_until_idle(self, timeout: float | None = None) -> bool:
        return self._slot.wait_until_idle(timeout)

    def trigger_backup(self) -> str:
        backup_id = str(uuid4())
        holder = self._slot.acquire(backup_id)
        if holder != backup_id:
            logger.info("Another backup id %s is already running. Aborting.", holder)
            raise BackupConflictError(holder)

        try:
            future = self._executor.submit(self._run_pipeline, backup_id)
        except RuntimeError:
            self._slot.release(backup_id)
            raise
        future.add_done_callback(lambda done: self._release_if_cancelled(done, backup_id))
        logger.info("Backup %s triggered", backup_id)
        return backup_id

    def cancel_backup(self, backup_id: str) -> str:
        if not self._slot.is_running(backup_id):
            raise BackupNotRunningError(f"Backup {backup_id} is not running")

        handle = self._context.live_handle()
        if handle is None:
            raise NoRunningProcessError(f"Backup {backup_id} has no running process to cancel")

        logger.debug("Canceling currently running backup %s", backup_id)
        try:
            stopped = handle.stop()
        except OSError as exc:
            raise BackupCancelError(f"Couldn't cancel current running backup task. err={exc}") from exc
        if not stopped:
            raise NoRunningProcessError(f"Process for backup {backup_id} exited before it could be cancelled")
        logger.info("Backup %s cancelled (pid=%s)", backup_id, handle.pid)
        return backup_id

    def get_status(self, backup_id: str) -> BackupRecord:
        if self._slot.is_running(backup_id):
            return BackupRecord(
                id=backup_id,
                status=BackupStatus.RUNNING,
                message="backup is still running",
                size_mb=UNKNOWN_SIZE_MB,
            )

        try:
            record = self._backend.get_backup(backup_id)
        except (BackendError, BackupNotFoundError):
            raise
        except Exception as exc:
            raise BackendError(f"Error calling get_backup() for id {backup_id}: {exc}") from exc
        if record is None:
            raise BackupNotFoundError(f"Backup {backup_id} not found")
        return record

    def list_backups(self) -> list[BackupRecord]:
        try:
            return list(self._backend.get_all_backups())
        except BackendError:
            raise
        except Exception as exc:
            raise BackendError(f"Error calling get_all_backups(): {exc}") from exc

    def delete_backup(self, backup_id: str) -> None:
        if self._slot.is_running(backup_id):
            raise BackupConflictError(backup_id)
        try:
            self._backend.delete_backup(backup_id)
        except (BackendError, BackupNotFoundError):
            raise
        except Exception as exc:
            raise BackendError(f"Error calling delete_backup() with id {backup_id}: {exc}") from exc
        logger.debug("Backup %s deleted", backup_id)

    def shutdown(self) -> None:
        handle = self._context.live_handle()
        if handle is not None:
            logger.info("Stopping running process pid=%s on shutdown", handle.pid)
            try:
                handle.stop()
            except OSError as exc:
                logger.warning("Couldn't stop process pid=%s on shutdown. err=%s", handle.pid, exc)
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _release_if_cancelled(self, future: Future, backup_id: str) -> None:
        if future.cancelled():
            logger.info("Backup %s dropped before it started", backup_id)
            self._slot.release(backup_id)

    def _run_pipeline(self, backup_id: str) -> None:
        started = time.monotonic()
        self._context.clear()
        result: JobResult | None = None
        try:
            result = self._execute_stages(backup_id, started)
        except Exception as exc:
            logger.exception("Backup pipeline for %s crashed", backup_id)
            result = self._make_result(backup_id, JobOutcome.FAILED, None, False, str(exc), started)
        finally:
            if result is not None:
                with self._result_lock:
                    self._last_result = result
            self._slot.release(backup_id)

    def _execute_stages(self, backup_id: str, started: float) -> JobResult:
        logger.debug("Backup request arrived id=%s", backup_id)

        if self._settings.pre_backup_command:
            failure = self._run_hook(JobStage.PRE_HOOK, self._settings.pre_backup_command, backup_id, started)
            if failure is not None:
                return failure
            logger.debug("Pre-backup command success")

        logger.info("Running backup %s", backup_id)
        previous = self._context.handle
        try:
            self._backend.create_new_backup(backup_id, self._backup_timeout(), self._context)
        except Exception as exc:
            return self._stage_failed(backup_id, JobStage.BACKUP, exc, previous, started, backup_created=False)
        logger.debug("Backup creation success on backend. backup id %s", backup_id)

        if self._settings.post_backup_command:
            failure = self._run_hook(JobStage.POST_HOOK, self._settings.post_backup_command, backup_id, started)
            if failure is not None:
                return failure
            logger.debug("Post-backup command success")

        logger.info("Backup %s finished", backup_id)
        return self._make_result(backup_id, JobOutcome.SUCCESS, None, True, "backup finished", started)

    def _run_hook(self, stage: JobStage, command: str, backup_id: str, started: float) -> JobResult | None:
        logger.info("Running %s '%s'", _STAGE_LABELS[stage].lower(), command)
        previous = self._context.handle
        try:
            output = run_command(command, self._hook_timeout(), self._context, env={"BACKUP_ID": backup_id})
        except CommandError as exc:
            logger.debug("%s error. out=%s; err=%s", _STAGE_LABELS[stage], exc.output, exc)
            return self._stage_failed(
                backup_id,
                stage,
                exc,
                previous,
                started,
                backup_created=stage == JobStage.POST_HOOK,
            )
        logger.debug("%s output: %s", _STAGE_LABELS[stage], output)
        return None

    def _stage_failed(
        self,
        backup_id: str,
        stage: JobStage,
        exc: Exception,
        previous: ProcessHandle | None,
        started: float,
        *,
        backup_created: bool,
    ) -> JobResult:
        label = _STAGE_LABELS[stage]
        outcome = self._classify_failure(exc, previous)
        if outcome == JobOutcome.TIMED_OUT:
            handle = self._context.handle
            elapsed = handle.status().elapsed_seconds if handle is not None else None
            logger.warning("%s timeout enforced (%d seconds)", label, int(elapsed or 0))
        elif outcome == JobOutcome.CANCELLED:
            logger.warning("%s cancelled for backup %s", label, backup_id)
        else:
            logger.warning("%s failed for backup %s: %s", label, backup_id, exc)

        message = f"{label} {outcome.value.replace('_', ' ')}: {exc}"
        if backup_created:
            message = f"backup created but {message[0].lower()}{message[1:]}"
        return self._make_result(backup_id, outcome, stage, backup_created, message, started)

    def _classify_failure(self, exc: Exception, previous: ProcessHandle | None) -> JobOutcome:
        if isinstance(exc, CommandTimeoutError):
            return JobOutcome.TIMED_OUT
        if isinstance(exc, CommandStoppedError):
            return JobOutcome.CANCELLED

        # backends may wrap runner errors; fall back to the handle this stage attached
        handle = self._context.handle
        if handle is not None and handle is not previous:
            status = handle.status()
            if status.timed_out:
                return JobOutcome.TIMED_OUT
            if status.stopped:
                return JobOutcome.CANCELLED
        return JobOutcome.FAILED

    def _make_result(
        self,
        backup_id: str,
        outcome: JobOutcome,
        stage: JobStage | None,
        backup_created: bool,
        message: str,
        started: float,
    ) -> JobResult:
        return JobResult(
            backup_id=backup_id,
            outcome=outcome,
            stage=stage,
            backup_created=backup_created,
            message=message,
            elapsed_seconds=round(time.monotonic() - started, 3),
            finished_at=self._now(),
        )
