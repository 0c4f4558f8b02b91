"""
pomodoro/core/reconciler.py

Advances running timers by elapsed wall-clock time.

One reconciliation pass measures whole seconds since the previous pass and
applies them to every running timer at once, so a context that was
suspended for 37 seconds catches up in a single pass rather than 37 ticks.
At least one second is applied per pass; a tick that arrives with zero or
negative elapsed time (clock anomalies, a late tick) is clamped instead of
rejected.

Passes are serialized with the store's lock, so a pass always reads elapsed
time, mutates all timers and persists before another pass or an intent can
touch the collection.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..events import TIMER_FINISHED, TIMERS_TICKED, EventBus, EventPriority
from ..timers.store import TimerStore
from .clock import Clock, SystemClock

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Outcome of one reconciliation pass."""
    elapsed: int  # Whole seconds measured since the previous pass
    applied: int  # Seconds applied to each running timer (>= 1)
    ticked: List[str] = field(default_factory=list)  # Ids that were running
    finished: List[str] = field(default_factory=list)  # Ids that completed
    saved: bool = True

    @property
    def idle(self) -> bool:
        return not self.ticked


class TickReconciler:
    """
    Consumes ticks from whichever source is authoritative.

    Args:
        store: Timer store to mutate.
        event_bus: Bus for timers-ticked / timer-finished events.
        clock: Wall-clock source (SystemClock by default).
    """

    SOURCE = "reconciler"

    def __init__(
        self,
        store: TimerStore,
        event_bus: EventBus,
        clock: Optional[Clock] = None,
    ):
        self.store = store
        self.event_bus = event_bus
        self.clock = clock or SystemClock()
        self.last_reconcile_time = self.clock.now()
        self.passes = 0

    def reset_baseline(self) -> None:
        """Forget time elapsed since the last pass without applying it."""
        self.last_reconcile_time = self.clock.now()

    async def reconcile(self) -> ReconcileResult:
        """
        Run one reconciliation pass.

        With no running timers this only moves the baseline: nothing is
        persisted and no event is published.

        Returns:
            ReconcileResult describing the pass.
        """
        error = None
        async with self.store.lock:
            now = self.clock.now()
            elapsed = int((now - self.last_reconcile_time) // 1000)
            self.last_reconcile_time = now
            applied = max(1, elapsed)
            self.passes += 1

            result = ReconcileResult(elapsed=elapsed, applied=applied)
            running = self.store.running_timers()
            if not running:
                return result

            if elapsed > 1:
                logger.debug(f"Catching up {elapsed}s across {len(running)} timer(s)")

            finished = []
            for timer in running:
                result.ticked.append(timer.id)
                if timer.advance(applied):
                    finished.append(timer)
                    result.finished.append(timer.id)

            error = await self.store.persist()
            result.saved = error is None
            rows = [timer.display_row() for timer in self.store.timers]

        if error:
            await self.store.report_save_failure(error)

        await self.event_bus.emit(TIMERS_TICKED, {"timers": rows}, self.SOURCE)

        for timer in finished:
            logger.info(f"Timer complete: {timer.label}")
            await self.event_bus.emit(
                TIMER_FINISHED,
                {"id": timer.id, "label": timer.label},
                self.SOURCE,
                priority=EventPriority.HIGH,
            )

        return result
