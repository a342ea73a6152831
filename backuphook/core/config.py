from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, PositiveInt, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SUPPORTED_LOG_LEVELS = {"debug", "info", "warning", "error"}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="BACKUPHOOK_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "backuphook"
    api_host: str = "0.0.0.0"
    api_port: PositiveInt = 7070
    log_level: str = "info"

    pre_backup_command: str | None = None
    post_backup_command: str | None = None
    pre_post_timeout_seconds: PositiveInt = 7200
    backup_timeout_seconds: PositiveInt | None = None

    backup_command: str | None = None
    delete_command: str | None = None

    state_root: Path = Field(default=Path("/state"))
    database_url: str | None = None

    @field_validator("pre_backup_command", "post_backup_command", "backup_command", "delete_command", mode="before")
    @classmethod
    def _blank_command_is_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped = str(value).strip()
        return stripped or None

    @field_validator("state_root", mode="before")
    @classmethod
    def _normalize_path(cls, value: str | Path) -> Path:
        raw = str(value)
        if "~" in raw:
            raise ValueError("Home expansion syntax is not allowed in paths")
        if "$" in raw:
            raise ValueError("Environment variable syntax is not allowed in paths")
        path = Path(raw)
        if not path.is_absolute():
            raise ValueError("Path settings must be absolute")
        return path

    @model_validator(mode="after")
    def _validate_runtime_constraints(self) -> "Settings":
        normalized_level = self.log_level.lower().strip()
        if normalized_level not in SUPPORTED_LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(SUPPORTED_LOG_LEVELS)}")
        self.log_level = normalized_level

        self.state_root = self.state_root.resolve(strict=False)
        self.state_root.mkdir(parents=True, exist_ok=True)
        return self

    @property
    def effective_backup_timeout_seconds(self) -> int:
        if self.backup_timeout_seconds is not None:
            return self.backup_timeout_seconds
        return self.pre_post_timeout_seconds

    @property
    def effective_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        db_path = self.state_root / "backuphook.sqlite3"
        return f"sqlite:///{db_path.as_posix()}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
