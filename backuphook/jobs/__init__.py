from backuphook.jobs.service import (
    BackupCancelError,
    BackupConflictError,
    BackupJobService,
    BackupNotRunningError,
    NoRunningProcessError,
)
from backuphook.jobs.slot import JobSlot
from backuphook.jobs.types import JobOutcome, JobResult, JobStage, result_to_dict

__all__ = [
    "BackupCancelError",
    "BackupConflictError",
    "BackupJobService",
    "BackupNotRunningError",
    "NoRunningProcessError",
    "JobSlot",
    "JobOutcome",
    "JobResult",
    "JobStage",
    "result_to_dict",
]
