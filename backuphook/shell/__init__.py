from backuphook.shell.runner import (
    CommandError,
    CommandFailedError,
    CommandSpawnError,
    CommandStoppedError,
    CommandTimeoutError,
    ExecutionContext,
    ProcessHandle,
    run_command,
)
from backuphook.shell.types import KILLED_EXIT_CODE, ProcessStatus

__all__ = [
    "CommandError",
    "CommandFailedError",
    "CommandSpawnError",
    "CommandStoppedError",
    "CommandTimeoutError",
    "ExecutionContext",
    "ProcessHandle",
    "ProcessStatus",
    "KILLED_EXIT_CODE",
    "run_command",
]
