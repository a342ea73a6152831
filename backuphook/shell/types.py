from __future__ import annotations

from dataclasses import dataclass

KILLED_EXIT_CODE = -1


@dataclass(frozen=True, slots=True)
class ProcessStatus:
    command: str
    pid: int | None
    exit_code: int | None
    start_ts: int | None
    stop_ts: int | None
    complete: bool
    timed_out: bool
    stopped: bool

    @property
    def killed(self) -> bool:
        return self.exit_code == KILLED_EXIT_CODE and (self.timed_out or self.stopped)

    @property
    def elapsed_seconds(self) -> float | None:
        if self.start_ts is None or self.stop_ts is None:
            return None
        return (self.stop_ts - self.start_ts) / 1_000_000_000
