from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

UNKNOWN_SIZE_MB = -1.0


class BackupStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    DELETED = "deleted"
    ERROR = "error"


@dataclass(slots=True)
class BackupRecord:
    id: str
    status: BackupStatus
    data_id: str = ""
    message: str = ""
    size_mb: float = UNKNOWN_SIZE_MB


def record_to_dict(record: BackupRecord) -> dict[str, object]:
    return {
        "id": record.id,
        "data_id": record.data_id,
        "status": record.status.value,
        "message": record.message,
        "size_mb": record.size_mb,
    }
