"""
pomodoro/events/event_bus.py

In-process pub/sub between the timer core and whatever renders it.
"""

import fnmatch
import logging
from collections import Counter, deque
from typing import Any, Awaitable, Callable, Dict, List, NamedTuple, Optional

from .event import Event, EventPriority

Handler = Callable[[Event], Awaitable[None]]


class Subscription(NamedTuple):
    pattern: str
    subscriber: str
    handler: Handler


class EventBus:
    """
    Publishes timer events to subscribed handlers.

    Handlers run in the order they subscribed and are awaited one at a
    time, so a subscriber sees events in publication order. A handler that
    raises is logged and counted; the remaining handlers still run.

    Args:
        history_size: How many recent events get_history() can return.
        logger: Optional logger instance.

    Example:
        bus = EventBus()

        async def on_finished(event):
            print(f"Timer complete: {event.data['label']}")

        bus.subscribe('timer-finished', on_finished, 'notifier')
        await bus.emit('timer-finished', {'id': 'abc', 'label': 'Focus'}, 'reconciler')
    """

    def __init__(
        self, history_size: int = 100, logger: Optional[logging.Logger] = None
    ):
        self.logger = logger or logging.getLogger(__name__)
        self._subscriptions: List[Subscription] = []
        self._history: deque = deque(maxlen=history_size)
        self._stats: Counter = Counter(
            events_published=0, events_dispatched=0, handler_errors=0
        )

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def subscribe(self, event_pattern: str, handler: Handler, subscriber: str) -> None:
        """
        Register ``handler`` for events whose name matches ``event_pattern``.

        Patterns use shell-style wildcards:
            bus.subscribe('timer-finished', handler, 'notifier')
            bus.subscribe('timers-*', handler, 'renderer')
            bus.subscribe('*', handler, 'nats-bridge')
        """
        self._subscriptions.append(Subscription(event_pattern, subscriber, handler))
        self.logger.debug(f"{subscriber} subscribed to {event_pattern}")

    def unsubscribe(self, event_pattern: str, subscriber: str) -> None:
        """Drop one subscriber's handlers for one pattern."""
        self._remove(
            lambda sub: sub.pattern == event_pattern and sub.subscriber == subscriber
        )

    def unsubscribe_all(self, subscriber: str) -> None:
        """Drop every handler registered by ``subscriber``."""
        self._remove(lambda sub: sub.subscriber == subscriber)

    def _remove(self, doomed: Callable[[Subscription], bool]) -> None:
        kept = [sub for sub in self._subscriptions if not doomed(sub)]
        removed = len(self._subscriptions) - len(kept)
        self._subscriptions = kept
        if removed:
            self.logger.debug(f"Removed {removed} subscription(s)")

    def subscribers(self, event_name: str) -> List[str]:
        """Names of subscribers that would receive ``event_name``."""
        return [sub.subscriber for sub in self._matching(event_name)]

    def _matching(self, event_name: str) -> List[Subscription]:
        return [
            sub for sub in self._subscriptions
            if fnmatch.fnmatchcase(event_name, sub.pattern)
        ]

    # =========================================================================
    # Publishing
    # =========================================================================

    async def publish(self, event: Event) -> None:
        """Deliver ``event`` to every matching handler."""
        self._stats["events_published"] += 1
        self._history.append(event)

        matching = self._matching(event.name)
        if not matching:
            self.logger.debug(f"No subscribers for {event.name}")
            return

        for sub in matching:
            self._stats["events_dispatched"] += 1
            try:
                await sub.handler(event)
            except Exception as e:
                self._stats["handler_errors"] += 1
                self.logger.error(
                    f"Error in {sub.subscriber} handling {event.name}: {e}",
                    exc_info=True,
                )

    async def emit(
        self,
        name: str,
        data: Dict[str, Any],
        source: str,
        priority: EventPriority = EventPriority.NORMAL,
    ) -> Event:
        """Build and publish an event; returns it."""
        event = Event(name=name, data=data, source=source, priority=priority)
        await self.publish(event)
        return event

    # =========================================================================
    # Introspection
    # =========================================================================

    def get_history(
        self, count: Optional[int] = None, event_pattern: Optional[str] = None
    ) -> List[Event]:
        """
        Recent events, newest first.

        Args:
            count: Maximum number to return (None = all kept).
            event_pattern: Only events whose name matches.
        """
        events = [
            event for event in reversed(self._history)
            if event_pattern is None or fnmatch.fnmatchcase(event.name, event_pattern)
        ]
        return events[:count] if count else events

    def get_stats(self) -> Dict[str, int]:
        return dict(self._stats)

    def clear_history(self) -> None:
        self._history.clear()

    def __repr__(self) -> str:
        return (
            f"<EventBus subscriptions={len(self._subscriptions)} "
            f"published={self._stats['events_published']}>"
        )
