"""
pomodoro/timers/store.py

Timer collection and its persistence boundary.

The store is the only owner of the timer list. Human intents mutate it
through the methods below; the tick reconciler mutates it while holding
``store.lock``. Every mutation persists the whole collection under a single
key before returning. Persistence is best-effort: failures are logged and
published as ``storage-error`` events, and the in-memory collection stays
authoritative for the session.

Events are always published after ``lock`` is released, so subscribers may
call back into the store.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

from ..events import STORAGE_ERROR, TIMERS_CHANGED, EventBus
from .errors import InvalidTimerError, TimerNotFoundError
from .timer import Timer, TimerStatus

DEFAULT_STORAGE_KEY = "pomodoro-timers"
DEFAULT_NAMESPACE = "pomodoro"

TAB_ACTIVE = "active"
TAB_DONE = "done"
TABS = (TAB_ACTIVE, TAB_DONE)


def backfill_time_spent(record: Any) -> bool:
    """
    Fill the derived timeSpent field on a legacy record.

    Done timers count their whole duration as spent; anything else counts
    what has already been consumed.

    Returns:
        True if the record was modified.
    """
    if not isinstance(record, dict) or "timeSpent" in record:
        return False

    total = record.get("totalTime")
    remaining = record.get("remainingTime")
    if not isinstance(total, int):
        return False

    if record.get("status") == TimerStatus.DONE.value:
        record["timeSpent"] = total
    elif isinstance(remaining, int):
        record["timeSpent"] = total - remaining
    else:
        return False
    return True


class TimerStore:
    """
    Holds the timer collection and the current view tab.

    Args:
        database: Object providing async kv_get/kv_set (TimerDatabase).
        event_bus: Bus used for timers-changed / storage-error events.
        storage_key: Key the collection is persisted under.
        namespace: Storage namespace.
    """

    SOURCE = "store"

    def __init__(
        self,
        database,
        event_bus: EventBus,
        storage_key: str = DEFAULT_STORAGE_KEY,
        namespace: str = DEFAULT_NAMESPACE,
    ):
        self.database = database
        self.event_bus = event_bus
        self.storage_key = storage_key
        self.namespace = namespace
        self.logger = logging.getLogger(__name__)

        self._timers: List[Timer] = []
        self._current_tab = TAB_ACTIVE

        # Guards the collection; shared with the tick reconciler
        self.lock = asyncio.Lock()

    # =========================================================================
    # Accessors
    # =========================================================================

    @property
    def timers(self) -> List[Timer]:
        """Snapshot of the collection in creation order."""
        return list(self._timers)

    def get(self, timer_id: str) -> Optional[Timer]:
        for timer in self._timers:
            if timer.id == timer_id:
                return timer
        return None

    def _require(self, timer_id: str) -> Timer:
        timer = self.get(timer_id)
        if timer is None:
            raise TimerNotFoundError(timer_id)
        return timer

    def running_timers(self) -> List[Timer]:
        return [t for t in self._timers if t.is_running]

    def has_running(self) -> bool:
        return any(t.is_running for t in self._timers)

    def active_timers(self) -> List[Timer]:
        """Everything not yet confirmed done (includes completed)."""
        return [t for t in self._timers if t.status is not TimerStatus.DONE]

    def done_timers(self) -> List[Timer]:
        return [t for t in self._timers if t.status is TimerStatus.DONE]

    @property
    def current_tab(self) -> str:
        return self._current_tab

    def switch_tab(self, tab: str) -> None:
        """
        Select which list the presentation layer shows.

        Raises:
            ValueError: If tab is not 'active' or 'done'.
        """
        if tab not in TABS:
            raise ValueError(f"Unknown tab '{tab}' (expected one of {', '.join(TABS)})")
        self._current_tab = tab

    def visible_timers(self) -> List[Timer]:
        if self._current_tab == TAB_DONE:
            return self.done_timers()
        return self.active_timers()

    # =========================================================================
    # Persistence
    # =========================================================================

    async def load(self) -> List[Timer]:
        """
        Read the persisted collection.

        Legacy records without timeSpent are back-filled and written back
        immediately. Malformed data is discarded and the store starts empty.

        Returns:
            The loaded timers.
        """
        error = None
        async with self.lock:
            records = await self._read_records()

            backfilled = sum(1 for record in records if backfill_time_spent(record))

            try:
                self._timers = [Timer.from_dict(record) for record in records]
            except InvalidTimerError as e:
                self.logger.error(f"Discarding malformed timer data: {e}")
                self._timers = []
                backfilled = 0

            if backfilled:
                self.logger.info(f"Back-filled timeSpent on {backfilled} legacy timer(s)")
                error = await self.persist()

            self.logger.info(f"Loaded {len(self._timers)} timer(s)")

        if error:
            await self.report_save_failure(error)
        await self._emit_changed()
        return self.timers

    async def _read_records(self) -> List[Any]:
        try:
            result = await self.database.kv_get(self.namespace, self.storage_key)
        except Exception as e:
            self.logger.error(f"Error loading timers: {e}")
            return []

        if not result.get("exists"):
            return []

        records = result.get("value")
        if not isinstance(records, list):
            self.logger.error(
                f"Discarding malformed timer data: expected a list, "
                f"got {type(records).__name__}"
            )
            return []
        return records

    async def persist(self) -> Optional[str]:
        """
        Write the whole collection. Caller must hold ``lock``.

        Returns:
            None on success, otherwise the error message (already logged).
        """
        records = [timer.to_dict() for timer in self._timers]
        try:
            await self.database.kv_set(self.namespace, self.storage_key, records)
        except Exception as e:
            self.logger.error(f"Error saving timers: {e}")
            return str(e) or e.__class__.__name__
        return None

    async def report_save_failure(self, error: str) -> None:
        await self.event_bus.emit(
            STORAGE_ERROR, {"operation": "save", "error": error}, self.SOURCE
        )

    async def save(self) -> bool:
        """
        Persist the collection. Never raises.

        Returns:
            True if the write succeeded.
        """
        async with self.lock:
            error = await self.persist()
        if error:
            await self.report_save_failure(error)
            return False
        return True

    async def _emit_changed(self) -> None:
        await self.event_bus.emit(
            TIMERS_CHANGED,
            {"timers": [timer.to_dict() for timer in self._timers]},
            self.SOURCE,
        )

    async def _commit(self, error: Optional[str]) -> None:
        """Publish the outcome of a mutation; call after releasing lock."""
        if error:
            await self.report_save_failure(error)
        await self._emit_changed()

    # =========================================================================
    # Intents
    # =========================================================================

    async def create(self, label: str, duration_minutes: int) -> Timer:
        """
        Create a paused timer.

        Raises:
            InvalidTimerError: If label is blank or duration not positive.
        """
        timer = Timer.create(label, duration_minutes)
        async with self.lock:
            self._timers.append(timer)
            error = await self.persist()
        self.logger.info(f"Created timer '{timer.label}' ({timer.total_time}s)")
        await self._commit(error)
        return timer

    async def _transition(self, timer_id: str, action: str) -> bool:
        async with self.lock:
            timer = self._require(timer_id)
            changed = getattr(timer, action)()
            error = await self.persist() if changed else None

        if not changed:
            self.logger.debug(f"{action} ignored for timer {timer_id} ({timer.status.value})")
            return False

        self.logger.info(f"Timer '{timer.label}' -> {timer.status.value}")
        await self._commit(error)
        return True

    async def start(self, timer_id: str) -> bool:
        """
        Start a paused timer. Completed and done timers are left alone.

        Returns:
            True if the timer started.

        Raises:
            TimerNotFoundError: If no timer has this id.
        """
        return await self._transition(timer_id, "start")

    async def pause(self, timer_id: str) -> bool:
        """Pause a running timer; no-op for any other state."""
        return await self._transition(timer_id, "pause")

    async def mark_done(self, timer_id: str) -> bool:
        """
        Confirm a timer as done from any non-done state.

        Does not publish timer-finished; that only happens when a
        countdown runs out.
        """
        return await self._transition(timer_id, "mark_done")

    async def delete(self, timer_id: str) -> None:
        """
        Delete one timer.

        Raises:
            TimerNotFoundError: If no timer has this id.
        """
        async with self.lock:
            timer = self._require(timer_id)
            self._timers = [t for t in self._timers if t.id != timer_id]
            error = await self.persist()
        self.logger.info(f"Deleted timer '{timer.label}'")
        await self._commit(error)

    async def bulk_delete(self, timer_ids: Iterable[str]) -> int:
        """
        Delete every timer whose id is listed. Unknown ids are ignored.

        Returns:
            Number of timers removed.
        """
        doomed = set(timer_ids)
        async with self.lock:
            before = len(self._timers)
            self._timers = [t for t in self._timers if t.id not in doomed]
            removed = before - len(self._timers)
            error = await self.persist()
        self.logger.info(f"Bulk deleted {removed} timer(s)")
        await self._commit(error)
        return removed

    def snapshot(self) -> Dict[str, Any]:
        """Full state for a render: current tab plus both lists."""
        return {
            "tab": self._current_tab,
            "active": [t.to_dict() for t in self.active_timers()],
            "done": [t.to_dict() for t in self.done_timers()],
        }
