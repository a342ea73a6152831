from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from backuphook.api.schemas.backups import BackupResponse, JobResultResponse, ServiceStatusResponse
from backuphook.backends.base import BackendError, BackupNotFoundError
from backuphook.backends.types import UNKNOWN_SIZE_MB, BackupStatus, record_to_dict
from backuphook.jobs.service import (
    BackupCancelError,
    BackupConflictError,
    BackupJobService,
    BackupNotRunningError,
    NoRunningProcessError,
)
from backuphook.jobs.types import result_to_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/backups", tags=["backups"])
status_router = APIRouter(tags=["status"])


def get_backup_service(request: Request) -> BackupJobService:
    return request.app.state.backup_service


@router.get("", response_model=list[BackupResponse])
def list_backups(service: BackupJobService = Depends(get_backup_service)) -> list[BackupResponse]:
    try:
        records = service.list_backups()
    except BackendError as exc:
        logger.warning("Error calling get_all_backups(). err=%s", exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return [BackupResponse.model_validate(record_to_dict(record)) for record in records]


@router.post("", response_model=BackupResponse, status_code=status.HTTP_202_ACCEPTED)
def create_backup(service: BackupJobService = Depends(get_backup_service)) -> BackupResponse:
    try:
        backup_id = service.trigger_backup()
    except BackupConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"{exc}. Aborting.") from exc
    return BackupResponse(
        id=backup_id,
        status=BackupStatus.RUNNING.value,
        message="backup triggered",
        size_mb=UNKNOWN_SIZE_MB,
    )


@router.get("/{backup_id}", response_model=BackupResponse)
def get_backup(backup_id: str, service: BackupJobService = Depends(get_backup_service)) -> BackupResponse:
    try:
        record = service.get_status(backup_id)
    except BackupNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except BackendError as exc:
        logger.warning("Error calling get_backup() for id %s. err=%s", backup_id, exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return BackupResponse.model_validate(record_to_dict(record))


@router.delete("/{backup_id}", response_model=BackupResponse)
def delete_backup(backup_id: str, service: BackupJobService = Depends(get_backup_service)):
    if service.is_running(backup_id):
        try:
            service.cancel_backup(backup_id)
        except NoRunningProcessError as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
        except BackupCancelError as exc:
            body = BackupResponse(id=backup_id, status=BackupStatus.RUNNING.value, message=str(exc))
            return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body.model_dump())
        except BackupNotRunningError:
            # finished between the check and the cancel; treat it as a stored backup
            pass
        else:
            return BackupResponse(
                id=backup_id,
                status=BackupStatus.DELETED.value,
                message="Running backup task was cancelled successfully",
            )

    try:
        service.delete_backup(backup_id)
    except BackupNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except BackupConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except BackendError as exc:
        logger.warning("Error calling delete_backup() with id %s. err=%s", backup_id, exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return BackupResponse(id=backup_id, status=BackupStatus.DELETED.value, message="backup deleted successfully")


@status_router.get("/status", response_model=ServiceStatusResponse)
def get_service_status(service: BackupJobService = Depends(get_backup_service)) -> ServiceStatusResponse:
    result = service.last_result()
    return ServiceStatusResponse(
        running_id=service.running_id(),
        last_result=JobResultResponse.model_validate(result_to_dict(result)) if result is not None else None,
    )
