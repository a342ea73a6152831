from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SAEnum, Float, Index, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from backuphook.backends.types import UNKNOWN_SIZE_MB, BackupStatus


class Base(DeclarativeBase):
    pass


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class BackupEntry(Base):
    __tablename__ = "backups"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    data_id: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    status: Mapped[BackupStatus] = mapped_column(
        SAEnum(BackupStatus, native_enum=False, values_callable=_enum_values),
        nullable=False,
        default=BackupStatus.RUNNING,
    )
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    size_mb: Mapped[float] = mapped_column(Float, nullable=False, default=UNKNOWN_SIZE_MB)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("ix_backups_created_at", "created_at"),)
