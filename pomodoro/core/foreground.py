"""
pomodoro/core/foreground.py

Cooperative foreground tick loop.

A single asyncio task sleeps for the tick interval and then hands a tick to
its callback. The callback decides whether the tick counts (see
VisibilityCoordinator); this loop only keeps time.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional


class ForegroundLoop:
    """
    Emits a tick every ``interval`` seconds from inside the event loop.

    Args:
        interval: Seconds between ticks (default: 1.0).
        on_tick: Async callback invoked once per tick.
    """

    def __init__(
        self,
        interval: float = 1.0,
        on_tick: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self.interval = interval
        self.on_tick = on_tick
        self.running = False
        self.tick_count = 0
        self._task: Optional[asyncio.Task] = None
        self.logger = logging.getLogger(__name__)

    async def start(self) -> None:
        """
        Start the loop task. Starting twice keeps the existing task.
        """
        if self.running:
            self.logger.warning("Foreground loop already running")
            return

        self.running = True
        self._task = asyncio.create_task(self._tick_loop())
        self.logger.info(f"Foreground loop started (interval: {self.interval}s)")

    async def stop(self) -> None:
        """
        Stop the loop and wait for the task to finish.
        """
        if not self.running:
            return

        self.running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        self.logger.info("Foreground loop stopped")

    async def _tick_loop(self) -> None:
        """
        Sleep, tick, repeat until stopped.

        Errors raised by the callback are logged and the loop keeps going.
        """
        self.logger.debug("Tick loop started")

        while self.running:
            try:
                await asyncio.sleep(self.interval)
                self.tick_count += 1

                if self.on_tick:
                    await self.on_tick()

            except asyncio.CancelledError:
                self.logger.debug("Tick loop cancelled")
                raise
            except Exception as e:
                self.logger.exception(f"Error in foreground tick: {e}")

        self.logger.debug("Tick loop ended")
