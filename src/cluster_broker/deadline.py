"""Cancellation and deadline signal shared by every network call in a run."""

from __future__ import annotations

import threading
import time

from cluster_broker.errors import DeadlineExceededError

DEFAULT_CALL_TIMEOUT = 30.0


class Deadline:
    """An optional overall timeout plus an explicit cancel flag.

    Network calls ask ``call_timeout()`` for their per-call timeout, which
    never exceeds the time left. ``check()`` raises once the deadline has
    passed or ``cancel()`` was called.
    """

    def __init__(
        self,
        timeout: float | None = None,
        call_timeout: float = DEFAULT_CALL_TIMEOUT,
    ) -> None:
        self._expires_at = None if timeout is None else time.monotonic() + timeout
        self._call_timeout = call_timeout
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None if unbounded."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def check(self, step: str | None = None) -> None:
        if self.cancelled:
            raise DeadlineExceededError("Run was cancelled", step=step)
        if self.expired:
            raise DeadlineExceededError("Run deadline exceeded", step=step)

    def call_timeout(self, step: str | None = None) -> float:
        """Check the deadline, then return the timeout for one call."""
        self.check(step)
        remaining = self.remaining()
        if remaining is None:
            return self._call_timeout
        return min(self._call_timeout, remaining)
