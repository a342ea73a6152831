from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class JobOutcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class JobStage(str, Enum):
    PRE_HOOK = "pre_hook"
    BACKUP = "backup"
    POST_HOOK = "post_hook"


@dataclass(frozen=True, slots=True)
class JobResult:
    backup_id: str
    outcome: JobOutcome
    stage: JobStage | None
    backup_created: bool
    message: str
    elapsed_seconds: float
    finished_at: datetime


def result_to_dict(result: JobResult) -> dict[str, Any]:
    return {
        "backup_id": result.backup_id,
        "outcome": result.outcome.value,
        "stage": result.stage.value if result.stage is not None else None,
        "backup_created": result.backup_created,
        "message": result.message,
        "elapsed_seconds": result.elapsed_seconds,
        "finished_at": result.finished_at,
    }
