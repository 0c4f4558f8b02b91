"""
pomodoro/events

In-process pub/sub used by the timer core to notify the presentation layer.

Event names published by the core:
- timers-changed: collection changed structurally (full re-render)
- timers-ticked: numeric/status refresh only
- timer-finished: a countdown reached zero
- storage-error: persisting the collection failed
- ticker-unavailable: background ticking fell back to foreground-only
"""

from .event import Event, EventPriority
from .event_bus import EventBus

TIMERS_CHANGED = "timers-changed"
TIMERS_TICKED = "timers-ticked"
TIMER_FINISHED = "timer-finished"
STORAGE_ERROR = "storage-error"
TICKER_UNAVAILABLE = "ticker-unavailable"

__all__ = [
    "Event",
    "EventPriority",
    "EventBus",
    "TIMERS_CHANGED",
    "TIMERS_TICKED",
    "TIMER_FINISHED",
    "STORAGE_ERROR",
    "TICKER_UNAVAILABLE",
]
