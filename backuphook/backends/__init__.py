from backuphook.backends.base import Backend, BackendError, BackupNotFoundError
from backuphook.backends.types import UNKNOWN_SIZE_MB, BackupRecord, BackupStatus, record_to_dict

__all__ = [
    "Backend",
    "BackendError",
    "BackupNotFoundError",
    "BackupRecord",
    "BackupStatus",
    "UNKNOWN_SIZE_MB",
    "record_to_dict",
]
