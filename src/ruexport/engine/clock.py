# src/ruexport/engine/clock.py
"""Clock abstraction for testable pacing.

The pager sleeps after over-threshold pages. Routing that sleep through
a Clock lets tests observe pacing decisions without waiting.
"""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Sleeps on behalf of the pager."""

    def sleep(self, seconds: float) -> None:
        """Block the caller for `seconds`."""
        ...


class SystemClock:
    """Production clock backed by time.sleep()."""

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)


class MockClock:
    """Records requested sleeps instead of blocking.

    Example:
        clock = MockClock()
        pager = CostAwarePager(source, ru_threshold=1000, ru_sleep_seconds=1.0, clock=clock)
        list(pager.pages(query))
        assert clock.sleeps == [1.0]
    """

    def __init__(self) -> None:
        self.sleeps: list[float] = []

    def sleep(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError(f"Cannot sleep for negative duration: {seconds}")
        self.sleeps.append(seconds)


# Default clock for production use
DEFAULT_CLOCK: Clock = SystemClock()
