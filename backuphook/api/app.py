from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from backuphook.api.routes.backups import router as backups_router
from backuphook.api.routes.backups import status_router
from backuphook.api.routes.health import router as health_router
from backuphook.backends.base import Backend
from backuphook.backends.command import CommandBackend
from backuphook.core.config import Settings, get_settings
from backuphook.core.logging import configure_logging
from backuphook.db.session import get_session_factory
from backuphook.jobs.service import BackupJobService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    configure_logging(settings.log_level)
    app.state.backend.init()
    logger.info("%s ready (backend=%s)", settings.app_name, type(app.state.backend).__name__)
    yield
    app.state.backup_service.shutdown()


def create_app(settings: Settings | None = None, backend: Backend | None = None) -> FastAPI:
    settings = settings or get_settings()
    if backend is None:
        backend = CommandBackend(settings=settings, session_factory=get_session_factory(settings))

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.settings = settings
    app.state.backend = backend
    app.state.backup_service = BackupJobService(settings=settings, backend=backend)

    app.include_router(health_router)
    app.include_router(status_router)
    app.include_router(backups_router)
    return app
