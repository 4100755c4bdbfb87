"""Run control: cooperative cancellation and an overall run deadline.

A `RunControl` is created per run and checked at every phase, table and
step boundary. Blocking database calls are bounded separately by the
per-statement timeout configured on the introspection capability.
"""

from __future__ import annotations

from dataclasses import dataclass
import threading
import time

from .exceptions import RunCancelled


@dataclass(slots=True)
class RunControl:
    """Cancellation signal and monotonic deadline for one run."""

    cancel_event: threading.Event | None = None
    deadline: float | None = None

    @classmethod
    def create(
        cls, *, timeout_sec: float | None = None, cancel_event: threading.Event | None = None
    ) -> RunControl:
        deadline = time.monotonic() + timeout_sec if timeout_sec and timeout_sec > 0 else None
        return cls(cancel_event=cancel_event, deadline=deadline)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def checkpoint(self, where: str) -> None:
        """Raise `RunCancelled` when the run was cancelled or ran out of time."""
        if self.cancelled:
            msg = f"Run cancelled before {where}"
            raise RunCancelled(msg)
        if self.deadline is not None and time.monotonic() >= self.deadline:
            msg = f"Run deadline exceeded before {where}"
            raise RunCancelled(msg)
