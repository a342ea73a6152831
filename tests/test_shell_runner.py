from __future__ import annotations

import threading
import time
from datetime import timedelta

import pytest

import backuphook.shell.runner as runner_module
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
from backuphook.shell.types import KILLED_EXIT_CODE

from conftest import wait_for


def test_run_command_returns_output_and_keeps_handle_after_exit() -> None:
    context = ExecutionContext()
    output = run_command("echo hello", 5, context)

    assert output == "hello\n"
    handle = context.handle
    assert handle is not None
    assert context.live_handle() is None

    status = handle.status()
    assert status.complete
    assert status.exit_code == 0
    assert status.start_ts is not None and status.stop_ts is not None
    assert status.stop_ts >= status.start_ts
    assert not status.timed_out
    assert not status.stopped


def test_stderr_is_merged_into_output() -> None:
    output = run_command("echo out; echo err 1>&2", 5, ExecutionContext())
    assert "out" in output
    assert "err" in output


def test_non_zero_exit_raises_with_exit_code_and_output() -> None:
    context = ExecutionContext()
    with pytest.raises(CommandFailedError) as excinfo:
        run_command("echo partial; exit 3", 5, context)

    assert excinfo.value.status is not None
    assert excinfo.value.status.exit_code == 3
    assert "partial" in excinfo.value.output
    assert not excinfo.value.status.killed


def test_unknown_command_is_a_failed_run() -> None:
    with pytest.raises(CommandFailedError) as excinfo:
        run_command("definitely-not-a-real-command-xyz", 5, ExecutionContext())
    assert excinfo.value.status is not None
    assert excinfo.value.status.exit_code == 127


def test_timeout_kills_process_and_reports_sentinel() -> None:
    context = ExecutionContext()
    started = time.monotonic()
    with pytest.raises(CommandTimeoutError) as excinfo:
        run_command("sleep 30", 0.5, context)
    elapsed = time.monotonic() - started

    assert elapsed < 5
    status = excinfo.value.status
    assert status is not None
    assert status.exit_code == KILLED_EXIT_CODE
    assert status.timed_out
    assert status.killed
    assert status.elapsed_seconds is not None
    assert status.elapsed_seconds >= 0.4
    assert context.live_handle() is None


def test_timeout_accepts_timedelta() -> None:
    with pytest.raises(CommandTimeoutError):
        run_command("sleep 30", timedelta(milliseconds=300), ExecutionContext())


def test_stop_from_another_thread_terminates_the_process() -> None:
    context = ExecutionContext()
    errors: list[CommandError] = []

    def run() -> None:
        try:
            run_command("sleep 30", 60, context)
        except CommandError as exc:
            errors.append(exc)

    worker = threading.Thread(target=run)
    started = time.monotonic()
    worker.start()
    assert wait_for(lambda: context.live_handle() is not None)

    handle = context.live_handle()
    assert handle is not None
    assert handle.stop() is True
    worker.join(timeout=5)

    assert not worker.is_alive()
    assert time.monotonic() - started < 10
    assert len(errors) == 1
    assert isinstance(errors[0], CommandStoppedError)
    status = handle.status()
    assert status.stopped
    assert not status.timed_out
    assert status.exit_code == KILLED_EXIT_CODE

    # stopping a finished process is a no-op
    assert handle.stop() is False
    assert context.live_handle() is None


def test_stop_kills_children_of_the_shell() -> None:
    context = ExecutionContext()
    errors: list[CommandError] = []

    def run() -> None:
        try:
            run_command("sleep 30 & sleep 30; wait", 60, context)
        except CommandError as exc:
            errors.append(exc)

    worker = threading.Thread(target=run)
    worker.start()
    assert wait_for(lambda: context.live_handle() is not None)
    context.live_handle().stop()  # type: ignore[union-attr]
    worker.join(timeout=5)

    assert not worker.is_alive()
    assert isinstance(errors[0], CommandStoppedError)


def test_next_command_replaces_previous_handle() -> None:
    context = ExecutionContext()
    run_command("true", 5, context)
    first = context.handle
    run_command("true", 5, context)
    assert context.handle is not first


def test_env_is_passed_to_the_command() -> None:
    output = run_command('echo "$BACKUP_ID"', 5, ExecutionContext(), env={"BACKUP_ID": "abc-123"})
    assert output.strip() == "abc-123"


def test_spawn_failure_raises_spawn_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(runner_module, "SHELL", "/nonexistent/bin/sh")
    context = ExecutionContext()
    with pytest.raises(CommandSpawnError):
        run_command("echo hi", 5, context)
    assert context.handle is None


@pytest.mark.parametrize("command", ["", "   "])
def test_blank_command_is_rejected(command: str) -> None:
    with pytest.raises(ValueError):
        run_command(command, 5, ExecutionContext())


@pytest.mark.parametrize("timeout", [0, -1, timedelta(0)])
def test_non_positive_timeout_is_rejected(timeout: float | timedelta) -> None:
    with pytest.raises(ValueError):
        run_command("true", timeout, ExecutionContext())


def test_timeout_kills_background_child_after_shell_exits() -> None:
    context = ExecutionContext()
    started = time.monotonic()
    with pytest.raises(CommandTimeoutError) as excinfo:
        run_command("sleep 30 & echo started", 1, context)

    assert time.monotonic() - started < 5
    assert "started" in excinfo.value.output
    status = excinfo.value.status
    assert status is not None
    assert status.timed_out
    assert status.exit_code == KILLED_EXIT_CODE
    assert context.live_handle() is None


def test_background_child_keeps_handle_live_and_stoppable() -> None:
    context = ExecutionContext()
    errors: list[CommandError] = []

    def run() -> None:
        try:
            run_command("sleep 30 & echo started", 60, context)
        except CommandError as exc:
            errors.append(exc)

    worker = threading.Thread(target=run)
    worker.start()
    assert wait_for(lambda: context.handle is not None)
    handle = context.handle
    assert handle is not None
    # the shell itself is gone, its child still holds the output pipe
    assert wait_for(lambda: handle._process.poll() is not None)  # type: ignore[union-attr]
    assert worker.is_alive()

    assert context.live_handle() is handle
    assert handle.stop() is True
    worker.join(timeout=5)

    assert not worker.is_alive()
    assert len(errors) == 1
    assert isinstance(errors[0], CommandStoppedError)
    status = handle.status()
    assert status.stopped
    assert not status.timed_out
    assert status.exit_code == KILLED_EXIT_CODE


def test_handle_without_process_has_no_pid_and_cannot_stop() -> None:
    handle = ProcessHandle("true")
    assert handle.pid is None
    assert not handle.is_running
    assert handle.stop() is False
