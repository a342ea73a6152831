"""Shell command execution with a deadline and cross-thread cancellation.

A command runs through ``/bin/sh -c`` in its own process group so that
killing it also takes down anything the shell spawned. The live
:class:`ProcessHandle` is published into an :class:`ExecutionContext` before
the runner blocks, which lets another thread (an HTTP request handler) stop
the process while the runner waits on it.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
import time
from datetime import timedelta
from typing import Mapping

from backuphook.shell.types import KILLED_EXIT_CODE, ProcessStatus

logger = logging.getLogger(__name__)

SHELL = "/bin/sh"

# how long to wait for pipes to close after the process group was killed
KILL_GRACE_SECONDS = 5.0


class CommandError(RuntimeError):
    def __init__(self, message: str, *, command: str, output: str = "", status: ProcessStatus | None = None):
        super().__init__(message)
        self.command = command
        self.output = output
        self.status = status


class CommandSpawnError(CommandError):
    pass


class CommandFailedError(CommandError):
    pass


class CommandTimeoutError(CommandError):
    pass


class CommandStoppedError(CommandError):
    pass


class ProcessHandle:
    def __init__(self, command: str):
        self.command = command
        self._lock = threading.Lock()
        self._process: subprocess.Popen[str] | None = None
        self._start_ts: int | None = None
        self._stop_ts: int | None = None
        self._exit_code: int | None = None
        self._complete = False
        self._timed_out = False
        self._stopped = False

    def _spawn(self, env: Mapping[str, str] | None) -> subprocess.Popen[str]:
        process_env = None
        if env:
            process_env = {**os.environ, **env}
        with self._lock:
            self._process = subprocess.Popen(
                [SHELL, "-c", self.command],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                env=process_env,
                start_new_session=True,
            )
            self._start_ts = time.time_ns()
            return self._process

    @property
    def pid(self) -> int | None:
        with self._lock:
            return self._process.pid if self._process is not None else None

    @property
    def is_running(self) -> bool:
        with self._lock:
            # the shell may exit while its children still hold the output pipe
            return self._process is not None and not self._complete

    def stop(self) -> bool:
        """Kill the process group. Returns False if nothing was running."""
        return self._kill(stopped=True)

    def _kill(self, *, stopped: bool = False, timed_out: bool = False) -> bool:
        with self._lock:
            if self._process is None or self._complete:
                return False
            try:
                os.killpg(self._process.pid, signal.SIGKILL)
            except ProcessLookupError:
                # whole group already gone, the runner is about to finish
                return False
            if stopped:
                self._stopped = True
            if timed_out and not self._stopped:
                self._timed_out = True
            return True

    def _finish(self, returncode: int) -> None:
        with self._lock:
            self._complete = True
            self._stop_ts = time.time_ns()
            if self._timed_out or self._stopped:
                self._exit_code = KILLED_EXIT_CODE
            else:
                self._exit_code = returncode

    def status(self) -> ProcessStatus:
        with self._lock:
            return ProcessStatus(
                command=self.command,
                pid=self._process.pid if self._process is not None else None,
                exit_code=self._exit_code,
                start_ts=self._start_ts,
                stop_ts=self._stop_ts,
                complete=self._complete,
                timed_out=self._timed_out,
                stopped=self._stopped,
            )


class ExecutionContext:
    """Shared slot for the process currently executing on behalf of a job."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handle: ProcessHandle | None = None

    def attach(self, handle: ProcessHandle) -> None:
        with self._lock:
            self._handle = handle

    def clear(self) -> None:
        with self._lock:
            self._handle = None

    @property
    def handle(self) -> ProcessHandle | None:
        with self._lock:
            return self._handle

    def live_handle(self) -> ProcessHandle | None:
        handle = self.handle
        if handle is not None and handle.is_running:
            return handle
        return None


def _drain_after_kill(process: subprocess.Popen[str]) -> str:
    try:
        output, _ = process.communicate(timeout=KILL_GRACE_SECONDS)
        return output or ""
    except subprocess.TimeoutExpired:
        # a child left the process group and keeps the pipe open
        logger.warning("Output pipe of pid=%s still open after kill, abandoning it", process.pid)
        if process.stdout is not None:
            process.stdout.close()
        process.wait()
        return ""


def _timeout_seconds(timeout: float | timedelta) -> float:
    if isinstance(timeout, timedelta):
        seconds = timeout.total_seconds()
    else:
        seconds = float(timeout)
    if seconds <= 0:
        raise ValueError("timeout must be greater than zero")
    return seconds


def run_command(
    command: str,
    timeout: float | timedelta,
    context: ExecutionContext,
    *,
    env: Mapping[str, str] | None = None,
) -> str:
    if not command or not command.strip():
        raise ValueError("command cannot be blank")
    seconds = _timeout_seconds(timeout)

    handle = ProcessHandle(command)
    try:
        process = handle._spawn(env)
    except OSError as exc:
        raise CommandSpawnError(f"Could not start command '{command}': {exc}", command=command) from exc
    context.attach(handle)
    logger.debug("Started '%s' pid=%s timeout=%ss", command, process.pid, seconds)

    try:
        output, _ = process.communicate(timeout=seconds)
    except subprocess.TimeoutExpired:
        if handle._kill(timed_out=True):
            logger.debug("Deadline of %ss reached for pid=%s, process group killed", seconds, process.pid)
        output = _drain_after_kill(process)
    handle._finish(process.returncode)

    status = handle.status()
    output = output or ""
    if status.timed_out:
        raise CommandTimeoutError(
            f"Command '{command}' killed after exceeding timeout of {seconds:g} seconds",
            command=command,
            output=output,
            status=status,
        )
    if status.stopped:
        raise CommandStoppedError(f"Command '{command}' was stopped", command=command, output=output, status=status)
    if status.exit_code != 0:
        raise CommandFailedError(
            f"Command '{command}' exited with code {status.exit_code}",
            command=command,
            output=output,
            status=status,
        )
    return output
