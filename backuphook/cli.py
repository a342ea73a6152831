from __future__ import annotations

import argparse
import logging
from typing import Any, Sequence

import uvicorn

from backuphook.api.app import create_app
from backuphook.backends.base import Backend
from backuphook.core.config import SUPPORTED_LOG_LEVELS, Settings
from backuphook.core.logging import configure_logging

logger = logging.getLogger(__name__)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="REST bridge that triggers, tracks and cancels backups")
    parser.add_argument("--listen-port", type=int, help="REST API server listen port (default 7070)")
    parser.add_argument("--listen-ip", help="REST API server listen ip address (default 0.0.0.0)")
    parser.add_argument("--log-level", choices=sorted(SUPPORTED_LOG_LEVELS), help="Log level (default info)")
    parser.add_argument("--pre-backup-command", help="Command to be executed before running the backup")
    parser.add_argument("--post-backup-command", help="Command to be executed after running the backup")
    parser.add_argument(
        "--pre-post-timeout",
        type=int,
        help="Max seconds for the pre or post command to run before it is killed (default 7200)",
    )
    parser.add_argument("--backup-command", help="Backup command run by the built-in command backend")
    parser.add_argument("--delete-command", help="Command run by the built-in command backend to delete a backup")
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> Settings:
    overrides: dict[str, Any] = {
        "api_port": args.listen_port,
        "api_host": args.listen_ip,
        "log_level": args.log_level,
        "pre_backup_command": args.pre_backup_command,
        "post_backup_command": args.post_backup_command,
        "pre_post_timeout_seconds": args.pre_post_timeout,
        "backup_command": args.backup_command,
        "delete_command": args.delete_command,
    }
    return Settings(**{key: value for key, value in overrides.items() if value is not None})


def main(argv: Sequence[str] | None = None, backend: Backend | None = None) -> int:
    args = parse_args(argv)
    settings = build_settings(args)
    configure_logging(settings.log_level)

    app = create_app(settings=settings, backend=backend)
    logger.info("Listening at %s:%d", settings.api_host, settings.api_port)
    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level,
        log_config=None,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
