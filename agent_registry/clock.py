"""
Timestamp sources for the registry.

The registry never waits on time; it only compares the injected clock's
current value against stored timestamps.
"""
import time
from typing import Protocol


class Clock(Protocol):
    """Protocol for timestamp sources"""

    def now(self) -> int:
        """Current time in whole seconds"""
        ...


class SystemClock:
    """Wall-clock time in seconds since the epoch."""

    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """
    Clock that only moves when told to.

    Used by hosts that replay a transaction log (block timestamps) and by tests.
    """

    def __init__(self, start: int = 0):
        self._now = start

    def now(self) -> int:
        return self._now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("Clock cannot move backwards")
        self._now += seconds
        return self._now

    def set(self, timestamp: int) -> None:
        if timestamp < self._now:
            raise ValueError("Clock cannot move backwards")
        self._now = timestamp
