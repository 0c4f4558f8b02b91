"""
pomodoro/events/event.py

What the timer core tells its listeners.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Any, Dict


class EventPriority(IntEnum):
    """How urgently a listener should surface an event."""

    LOW = 0
    NORMAL = 1
    # timer-finished: the user should be alerted
    HIGH = 2


@dataclass(frozen=True)
class Event:
    """
    A notification from one timer component.

    ``data`` is a JSON-ready dict whose shape depends on ``name``; the
    constants in ``pomodoro.events`` list the names in use.
    """

    name: str
    data: Dict[str, Any]
    source: str
    priority: EventPriority = EventPriority.NORMAL
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """Flat payload for the NATS bridge: envelope fields plus ``data``."""
        payload = dict(self.data)
        payload.update(
            event=self.name,
            source=self.source,
            timestamp=self.timestamp.isoformat(),
        )
        return payload

    def __str__(self) -> str:
        return f"{self.name} <- {self.source}"
