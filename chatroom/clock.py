"""Time source for liveness checks and message timestamps.

Everything that reads the current time goes through a clock object so tests
can move time forward without sleeping.
"""
import time
from datetime import datetime
from typing import Protocol


class Clock(Protocol):
    def now(self) -> float: ...


class SystemClock:
    def now(self) -> float:
        return time.time()


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> float:
        if seconds < 0:
            raise ValueError("clock cannot move backwards")
        self._now += seconds
        return self._now

    def set(self, ts: float) -> None:
        if ts < self._now:
            raise ValueError("clock cannot move backwards")
        self._now = float(ts)


def format_time(ts: float) -> str:
    # display only, second resolution
    return datetime.fromtimestamp(ts).strftime("%H:%M:%S")
