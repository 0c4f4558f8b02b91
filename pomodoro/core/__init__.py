"""
pomodoro/core

Timer tick and drift-correction subsystem.

- clock: wall-clock sources (SystemClock, FakeClock)
- ticker: out-of-process background tick source
- foreground: cooperative asyncio tick loop
- reconciler: applies elapsed whole seconds to running timers
- visibility: selects the authoritative tick source
"""

from .clock import Clock, FakeClock, SystemClock
from .foreground import ForegroundLoop
from .reconciler import ReconcileResult, TickReconciler
from .ticker import BackgroundTicker, TickerState
from .visibility import TickSource, VisibilityCoordinator

__all__ = [
    "Clock",
    "FakeClock",
    "SystemClock",
    "ForegroundLoop",
    "ReconcileResult",
    "TickReconciler",
    "BackgroundTicker",
    "TickerState",
    "TickSource",
    "VisibilityCoordinator",
]
