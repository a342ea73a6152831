from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class BackupResponse(BaseModel):
    id: str
    data_id: str = ""
    status: str
    message: str = ""
    size_mb: float = -1.0


class JobResultResponse(BaseModel):
    backup_id: str
    outcome: str
    stage: str | None
    backup_created: bool
    message: str
    elapsed_seconds: float
    finished_at: datetime


class ServiceStatusResponse(BaseModel):
    running_id: str | None
    last_result: JobResultResponse | None
