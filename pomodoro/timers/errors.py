"""
pomodoro/timers/errors.py

Timer-specific exceptions.
"""


class TimerError(Exception):
    """Base exception for timer errors."""
    pass


class TimerNotFoundError(TimerError, KeyError):
    """No timer with the given id."""

    def __init__(self, timer_id: str):
        super().__init__(timer_id)
        self.timer_id = timer_id

    def __str__(self) -> str:
        return f"No timer with id '{self.timer_id}'"


class InvalidTimerError(TimerError, ValueError):
    """Timer input (label, duration) or persisted record is invalid."""
    pass
