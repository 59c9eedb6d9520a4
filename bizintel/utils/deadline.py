"""
Deadline token shared by every stage of one acquisition run.

A single `Deadline` is created per invocation and handed down to discovery,
fetches and the crawl fan-out so each step is bounded by the time that is
actually left rather than by its own fixed timeout.
"""

import time
from typing import Callable, Optional


class Deadline:
    """Monotonic-clock deadline with helpers for bounding sub-step timeouts."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.total_seconds = seconds
        self.started_at = clock()
        self.expires_at = self.started_at + seconds

    def remaining(self) -> float:
        """Seconds left, never negative."""
        return max(0.0, self.expires_at - self._clock())

    def elapsed(self) -> float:
        return self._clock() - self.started_at

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0

    def bound(self, timeout: Optional[float]) -> float:
        """Clamp a per-call timeout (seconds) to the remaining budget."""
        remaining = self.remaining()
        if timeout is None:
            return remaining
        return min(timeout, remaining)

    def __repr__(self) -> str:
        return f"Deadline(total={self.total_seconds}s, remaining={self.remaining():.2f}s)"
