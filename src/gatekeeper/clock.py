"""Time sources used by the rate limiter and the response composer."""

import time
from typing import Protocol


class Clock(Protocol):
    """Anything that can tell the current time in epoch seconds."""

    def now(self) -> float: ...


class SystemClock:
    """Wall-clock time."""

    def now(self) -> float:
        return time.time()


class ManualClock:
    """Clock that only moves when told to. Used for deterministic tests and benchmarks."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self._now = start

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += seconds

    def set(self, timestamp: float) -> None:
        self._now = timestamp
