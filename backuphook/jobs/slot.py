from __future__ import annotations

import threading


class JobSlot:
    """Holds the id of the one backup allowed to run at a time."""

    def __init__(self) -> None:
        self._condition = threading.Condition()
        self._running_id: str | None = None

    def acquire(self, job_id: str) -> str:
        """Claim the slot for ``job_id`` and return the id holding it afterwards.

        The claim succeeded only when the returned id equals ``job_id``.
        """
        with self._condition:
            if self._running_id is None:
                self._running_id = job_id
            return self._running_id

    def release(self, job_id: str) -> bool:
        with self._condition:
            if self._running_id != job_id:
                return False
            self._running_id = None
            self._condition.notify_all()
            return True

    def current(self) -> str | None:
        with self._condition:
            return self._running_id

    def is_running(self, job_id: str) -> bool:
        with self._condition:
            return self._running_id is not None and self._running_id == job_id

    def wait_until_idle(self, timeout: float | None = None) -> bool:
        with self._condition:
            return self._condition.wait_for(lambda: self._running_id is None, timeout=timeout)
