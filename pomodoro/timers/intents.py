"""
pomodoro/timers/intents.py

Command dispatch table for presentation-layer intents.

Intents are the only way a human mutates timers. Each one maps to a store
method; results come back as reply dicts rather than exceptions:

    {"success": True, "result": ...}
    {"success": False, "error": "..."}

Intents:
    createTimer   {"label": str, "durationMinutes": int}
    startTimer    {"id": str}
    pauseTimer    {"id": str}
    markDone      {"id": str}
    deleteTimer   {"id": str}
    bulkDelete    {"ids": [str, ...]}
    switchTab     {"tab": "active" | "done"}
    listTimers    {}
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .errors import TimerError
from .store import TimerStore

Reply = Dict[str, Any]

CREATE_TIMER = "createTimer"
START_TIMER = "startTimer"
PAUSE_TIMER = "pauseTimer"
MARK_DONE = "markDone"
DELETE_TIMER = "deleteTimer"
BULK_DELETE = "bulkDelete"
SWITCH_TAB = "switchTab"
LIST_TIMERS = "listTimers"


def _ok(result: Any = None) -> Reply:
    return {"success": True, "result": result}


def _error(message: str) -> Reply:
    return {"success": False, "error": message}


def _require_id(payload: Dict[str, Any]) -> str:
    timer_id = payload.get("id")
    if not isinstance(timer_id, str) or not timer_id:
        raise ValueError("Missing timer id")
    return timer_id


class IntentDispatcher:
    """
    Routes intents to the timer store.

    Args:
        store: Timer store to mutate.
        on_change: Optional async hook run after an intent changed the
            running set (the visibility coordinator's refresh()).
    """

    def __init__(
        self,
        store: TimerStore,
        on_change: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self.store = store
        self.on_change = on_change
        self.logger = logging.getLogger(__name__)

        self._handlers: Dict[str, Callable[[Dict[str, Any]], Awaitable[Reply]]] = {
            CREATE_TIMER: self._create,
            START_TIMER: self._start,
            PAUSE_TIMER: self._pause,
            MARK_DONE: self._mark_done,
            DELETE_TIMER: self._delete,
            BULK_DELETE: self._bulk_delete,
            SWITCH_TAB: self._switch_tab,
            LIST_TIMERS: self._list,
        }

    @property
    def intents(self) -> List[str]:
        return list(self._handlers)

    async def dispatch(self, intent: str, payload: Optional[Dict[str, Any]] = None) -> Reply:
        """
        Run one intent.

        Args:
            intent: Intent name (e.g. 'startTimer').
            payload: Intent arguments.

        Returns:
            Reply dict; never raises for bad input.
        """
        handler = self._handlers.get(intent)
        if handler is None:
            return _error(f"Unknown intent '{intent}'")

        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            return _error("Intent payload must be an object")

        try:
            return await handler(payload)
        except (TimerError, ValueError, TypeError) as e:
            self.logger.debug(f"Rejected {intent}: {e}")
            return _error(str(e))
        except Exception as e:
            self.logger.exception(f"Error handling {intent}: {e}")
            return _error(f"An error occurred handling {intent}")

    async def _changed(self) -> None:
        if self.on_change:
            await self.on_change()

    async def _create(self, payload: Dict[str, Any]) -> Reply:
        duration = payload.get("durationMinutes")
        if isinstance(duration, str) and duration.strip().isdigit():
            duration = int(duration.strip())
        timer = await self.store.create(payload.get("label", ""), duration)
        return _ok(timer.to_dict())

    async def _start(self, payload: Dict[str, Any]) -> Reply:
        changed = await self.store.start(_require_id(payload))
        if changed:
            await self._changed()
        return _ok({"changed": changed})

    async def _pause(self, payload: Dict[str, Any]) -> Reply:
        changed = await self.store.pause(_require_id(payload))
        if changed:
            await self._changed()
        return _ok({"changed": changed})

    async def _mark_done(self, payload: Dict[str, Any]) -> Reply:
        changed = await self.store.mark_done(_require_id(payload))
        if changed:
            await self._changed()
        return _ok({"changed": changed})

    async def _delete(self, payload: Dict[str, Any]) -> Reply:
        timer_id = _require_id(payload)
        await self.store.delete(timer_id)
        await self._changed()
        return _ok({"deleted": timer_id})

    async def _bulk_delete(self, payload: Dict[str, Any]) -> Reply:
        ids = payload.get("ids")
        if not isinstance(ids, list) or not all(isinstance(i, str) for i in ids):
            raise ValueError("bulkDelete needs a list of timer ids")
        removed = await self.store.bulk_delete(ids)
        await self._changed()
        return _ok({"deleted": removed})

    async def _switch_tab(self, payload: Dict[str, Any]) -> Reply:
        self.store.switch_tab(payload.get("tab"))
        return _ok(self.store.snapshot())

    async def _list(self, payload: Dict[str, Any]) -> Reply:
        return _ok(self.store.snapshot())
