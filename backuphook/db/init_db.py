from __future__ import annotations

from sqlalchemy import Engine

from backuphook.db.migrations import apply_migrations
from backuphook.db.models import Base
from backuphook.db.session import get_engine


def initialize_database(engine: Engine | None = None) -> None:
    engine = engine or get_engine()
    Base.metadata.create_all(bind=engine)
    apply_migrations(engine)
