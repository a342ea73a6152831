from __future__ import annotations

import logging
import sys

HANDLER_NAME = "backuphook"
LOG_FORMAT = "[%(asctime)s] [%(name)s] [%(levelname)s] %(message)s"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def resolve_log_level(level: str | None) -> int:
    if level is None:
        return logging.INFO
    return _LEVELS.get(level.lower().strip(), logging.INFO)


def configure_logging(level: str | None = "info") -> None:
    root = logging.getLogger()
    resolved = resolve_log_level(level)
    root.setLevel(resolved)

    # one handler, reconfigured on repeated calls (lifespan + CLI)
    for handler in list(root.handlers):
        if handler.get_name() == HANDLER_NAME:
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    handler.set_name(HANDLER_NAME)
    root.addHandler(handler)
