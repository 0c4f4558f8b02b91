"""
pomodoro/core/clock.py

Wall-clock sources for the tick subsystem.

All readings are milliseconds since the epoch, matching the timestamps the
background ticker attaches to its tick messages.
"""

import time
from typing import Optional, Protocol


class Clock(Protocol):
    """Anything with a side-effect free now() in milliseconds."""

    def now(self) -> float:
        ...


class SystemClock:
    """Reads the host wall clock."""

    def now(self) -> float:
        return time.time() * 1000.0

    def __repr__(self) -> str:
        return "<SystemClock>"


class FakeClock:
    """
    Deterministic clock for tests.

    Time only moves when advance() or set() is called.

    Example:
        clock = FakeClock()
        clock.advance(seconds=37)
        assert clock.now() == 37_000
    """

    def __init__(self, start_ms: float = 0.0):
        self._now = float(start_ms)

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float = 0.0, ms: Optional[float] = None) -> float:
        """Move forward (or backward, for clock anomalies). Returns new time."""
        self._now += seconds * 1000.0
        if ms is not None:
            self._now += ms
        return self._now

    def set(self, ms: float) -> None:
        self._now = float(ms)

    def __repr__(self) -> str:
        return f"<FakeClock now={self._now:.0f}ms>"
