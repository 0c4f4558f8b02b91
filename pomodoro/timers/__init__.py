"""
pomodoro/timers

Timer model, store and intent surface.

Provides:
- Timer / TimerStatus with the per-timer state machine
- TimerStore owning the collection and its persistence
- IntentDispatcher mapping presentation intents to store methods
- TimerPlugin exposing intents, host signals and events over NATS
"""

from .errors import InvalidTimerError, TimerError, TimerNotFoundError
from .intents import IntentDispatcher
from .plugin import TimerPlugin
from .store import TimerStore, backfill_time_spent
from .timer import Timer, TimerStatus, format_time

__all__ = [
    "Timer",
    "TimerStatus",
    "TimerStore",
    "TimerPlugin",
    "IntentDispatcher",
    "TimerError",
    "TimerNotFoundError",
    "InvalidTimerError",
    "backfill_time_spent",
    "format_time",
]
