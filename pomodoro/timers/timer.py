"""
pomodoro/timers/timer.py

Timer model and display formatting.

Provides:
- TimerStatus enum and the per-timer state machine
- Timer dataclass with persisted-record conversion
- MM:SS formatting used by the presentation layer
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from .errors import InvalidTimerError


class TimerStatus(Enum):
    """
    Timer states.

    paused --start--> running --pause--> paused
    running --countdown exhausted--> completed
    {running, paused, completed} --mark_done--> done
    """
    PAUSED = "paused"
    RUNNING = "running"
    COMPLETED = "completed"  # Reached zero, awaiting confirmation
    DONE = "done"  # User-confirmed, terminal


FINISHED_STATES = (TimerStatus.COMPLETED, TimerStatus.DONE)


def format_time(seconds: int) -> str:
    """
    Format seconds as MM:SS.

    Minutes are not wrapped at 60, so 90 minutes renders as "90:00".
    """
    seconds = max(0, int(seconds))
    mins, secs = divmod(seconds, 60)
    return f"{mins:02d}:{secs:02d}"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _require_int(data: Dict[str, Any], key: str) -> int:
    value = data.get(key)
    # bool is an int subclass; a persisted true/false is not a duration
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidTimerError(f"Field '{key}' must be an integer, got {value!r}")
    return value


@dataclass
class Timer:
    """
    A user-defined countdown timer.

    Attributes:
        label: Non-empty trimmed label.
        total_time: Duration in seconds, fixed at creation.
        remaining_time: Seconds left; only decreases while running.
        time_spent: Seconds counted down so far.
        status: Current TimerStatus.
        id: Opaque unique identifier.
        created_at: ISO-8601 creation timestamp (UTC).

    Invariants:
        time_spent + remaining_time == total_time
        remaining_time == 0 iff status in (COMPLETED, DONE)
    """

    label: str
    total_time: int
    remaining_time: int
    time_spent: int = 0
    status: TimerStatus = TimerStatus.PAUSED
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: str = field(default_factory=_utc_now_iso)

    @classmethod
    def create(cls, label: str, duration_minutes: int) -> "Timer":
        """
        Build a new paused timer.

        Args:
            label: Timer label; surrounding whitespace is stripped.
            duration_minutes: Positive whole number of minutes.

        Raises:
            InvalidTimerError: If the label is empty or duration not positive.
        """
        label = (label or "").strip()
        if not label:
            raise InvalidTimerError("Timer label cannot be empty")
        if isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int):
            raise InvalidTimerError(
                f"Duration must be a whole number of minutes, got {duration_minutes!r}"
            )
        if duration_minutes <= 0:
            raise InvalidTimerError("Duration must be greater than zero")

        total = duration_minutes * 60
        return cls(label=label, total_time=total, remaining_time=total)

    # =========================================================================
    # State machine
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self.status is TimerStatus.RUNNING

    @property
    def is_finished(self) -> bool:
        return self.status in FINISHED_STATES

    def start(self) -> bool:
        """paused -> running. No-op (False) from any other state."""
        if self.status is not TimerStatus.PAUSED:
            return False
        self.status = TimerStatus.RUNNING
        return True

    def pause(self) -> bool:
        """running -> paused. No-op (False) from any other state."""
        if self.status is not TimerStatus.RUNNING:
            return False
        self.status = TimerStatus.PAUSED
        return True

    def mark_done(self) -> bool:
        """
        Any non-done state -> done.

        The remaining time is dropped and counted as spent so both
        invariants keep holding.
        """
        if self.status is TimerStatus.DONE:
            return False
        self.remaining_time = 0
        self.time_spent = self.total_time
        self.status = TimerStatus.DONE
        return True

    def advance(self, seconds: int) -> bool:
        """
        Count down a running timer.

        Applies at most remaining_time seconds to both counters; any
        overshoot is discarded.

        Returns:
            True if this call exhausted the countdown (running -> completed).
        """
        if self.status is not TimerStatus.RUNNING or seconds <= 0:
            return False

        applied = min(seconds, self.remaining_time)
        self.remaining_time -= applied
        self.time_spent += applied

        if self.remaining_time <= 0:
            self.remaining_time = 0
            self.status = TimerStatus.COMPLETED
            return True
        return False

    # =========================================================================
    # Display
    # =========================================================================

    @property
    def display_time(self) -> int:
        """Time spent for done timers, remaining time otherwise."""
        if self.status is TimerStatus.DONE:
            return self.time_spent
        return self.remaining_time

    @property
    def status_text(self) -> str:
        return self.status.value.capitalize()

    def display_label(self) -> str:
        prefix = "Time spent: " if self.status is TimerStatus.DONE else ""
        return f"{prefix}{format_time(self.display_time)}"

    def display_row(self) -> Dict[str, Any]:
        """Numeric and status fields only, for lightweight refreshes."""
        return {
            "id": self.id,
            "status": self.status.value,
            "statusText": self.status_text,
            "remainingTime": self.remaining_time,
            "timeSpent": self.time_spent,
            "display": self.display_label(),
        }

    # =========================================================================
    # Persistence
    # =========================================================================

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert to the persisted record format.

        Returns:
            Dictionary with camelCase keys.
        """
        return {
            "id": self.id,
            "label": self.label,
            "totalTime": self.total_time,
            "remainingTime": self.remaining_time,
            "timeSpent": self.time_spent,
            "status": self.status.value,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Timer":
        """
        Create a Timer from a persisted record.

        A time_spent that disagrees with total - remaining is recomputed
        from the two authoritative counters.

        Raises:
            InvalidTimerError: If the record is malformed.
        """
        if not isinstance(data, dict):
            raise InvalidTimerError(f"Timer record must be an object, got {type(data).__name__}")

        timer_id = data.get("id")
        if not isinstance(timer_id, str) or not timer_id:
            raise InvalidTimerError(f"Timer record has invalid id: {timer_id!r}")

        label = data.get("label")
        if not isinstance(label, str) or not label.strip():
            raise InvalidTimerError(f"Timer {timer_id} has an empty label")

        total = _require_int(data, "totalTime")
        remaining = _require_int(data, "remainingTime")
        spent = _require_int(data, "timeSpent")

        try:
            status = TimerStatus(data.get("status"))
        except ValueError:
            raise InvalidTimerError(
                f"Timer {timer_id} has unknown status {data.get('status')!r}"
            )

        if total <= 0 or not 0 <= remaining <= total:
            raise InvalidTimerError(
                f"Timer {timer_id} has out-of-range times "
                f"(total={total}, remaining={remaining})"
            )
        if (remaining == 0) != (status in FINISHED_STATES):
            raise InvalidTimerError(
                f"Timer {timer_id} is {status.value} with {remaining}s remaining"
            )
        if spent + remaining != total:
            spent = total - remaining

        created_at: Optional[str] = data.get("createdAt")
        if not isinstance(created_at, str):
            created_at = _utc_now_iso()

        return cls(
            id=timer_id,
            label=label.strip(),
            total_time=total,
            remaining_time=remaining,
            time_spent=spent,
            status=status,
            created_at=created_at,
        )
