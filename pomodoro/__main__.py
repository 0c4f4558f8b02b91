#!/usr/bin/env python3
"""
Pomodoro timer service orchestrator.

Starts the components in dependency order and stops them in reverse:

1. Storage (SQLAlchemy async)
2. Event bus and timer store (loads persisted timers)
3. Tick pipeline (reconciler, background ticker, visibility coordinator,
   foreground loop)
4. NATS surface (optional; the service runs offline without it)

Usage:
    python -m pomodoro [config.yaml]
"""

import asyncio
import logging
import signal
import sys
from typing import Optional

import nats

from .common.config import get_config, setup_logging
from .common.database import TimerDatabase
from .core import (
    BackgroundTicker,
    ForegroundLoop,
    TickReconciler,
    VisibilityCoordinator,
)
from .events import TIMER_FINISHED, Event, EventBus
from .timers import IntentDispatcher, TimerPlugin, TimerStore

logger = logging.getLogger(__name__)


class PomodoroApp:
    """
    Wires the timer service together.

    Args:
        config_path: Optional JSON/YAML config file.
    """

    def __init__(self, config_path: Optional[str] = None):
        self.config = get_config(config_path)

        self.database: Optional[TimerDatabase] = None
        self.event_bus: Optional[EventBus] = None
        self.store: Optional[TimerStore] = None
        self.reconciler: Optional[TickReconciler] = None
        self.ticker: Optional[BackgroundTicker] = None
        self.coordinator: Optional[VisibilityCoordinator] = None
        self.loop: Optional[ForegroundLoop] = None
        self.dispatcher: Optional[IntentDispatcher] = None
        self.nats = None
        self.plugin: Optional[TimerPlugin] = None

    async def start(self) -> None:
        """Start all components in order"""
        try:
            # 1. Storage
            logger.info("Connecting to storage...")
            self.database = TimerDatabase(self.config['database']['url'])
            await self.database.connect()

            # 2. Event bus + store
            self.event_bus = EventBus()
            self.event_bus.subscribe(TIMER_FINISHED, self._log_finished, "app")

            self.store = TimerStore(
                self.database,
                self.event_bus,
                storage_key=self.config['storage_key'],
            )
            await self.store.load()

            # 3. Tick pipeline
            self.reconciler = TickReconciler(self.store, self.event_bus)

            ticker_conf = self.config['background_ticker']
            if ticker_conf.get('enabled', True):
                self.ticker = BackgroundTicker(
                    interval=ticker_conf.get('interval', 1.0),
                    ready_timeout=ticker_conf.get('ready_timeout', 2.0),
                    start_method=ticker_conf.get('start_method', 'spawn'),
                )

            self.coordinator = VisibilityCoordinator(
                self.reconciler, self.store, self.event_bus, self.ticker
            )

            if self.ticker is not None:
                self.ticker.on_tick = self.coordinator.background_tick
                self.ticker.on_error = self.coordinator.ticker_failed
                if not await self.ticker.spawn():
                    logger.warning("Background ticker unavailable - ticking in the foreground only")
                    await self.coordinator.ticker_failed(
                        self.ticker.last_error or "ticker failed to start"
                    )
            else:
                logger.info("Background ticker disabled")

            self.dispatcher = IntentDispatcher(self.store, on_change=self.coordinator.refresh)

            self.loop = ForegroundLoop(
                interval=self.config.get('tick_interval', 1.0),
                on_tick=self.coordinator.foreground_tick,
            )
            self.reconciler.reset_baseline()
            await self.loop.start()

            # 4. NATS surface
            await self._start_nats()

            logger.info(f"Pomodoro service started with {len(self.store.timers)} timer(s)")

        except Exception as e:
            logger.error(f"Failed to start pomodoro service: {e}", exc_info=True)
            await self.stop()
            raise

    async def _start_nats(self) -> None:
        nats_conf = self.config.get('nats') or {}
        url = nats_conf.get('url')
        if not url:
            logger.info("NATS disabled - intents and events stay in-process")
            return

        try:
            self.nats = await nats.connect(
                servers=[url],
                name="pomodoro",
                connect_timeout=nats_conf.get('connection_timeout', 5),
                max_reconnect_attempts=nats_conf.get('max_reconnect_attempts', -1),
            )
        except Exception as e:
            logger.warning(f"NATS connection error: {e} - running offline")
            self.nats = None
            return

        self.plugin = TimerPlugin(
            self.nats, self.dispatcher, self.coordinator, self.event_bus
        )
        await self.plugin.initialize()
        logger.info(f"Connected to NATS: {url}")

    async def _log_finished(self, event: Event) -> None:
        logger.info(f"Timer finished: {event.data.get('label')}")

    async def stop(self) -> None:
        """Stop all components in reverse order"""
        logger.info("Shutting down pomodoro service...")

        if self.plugin:
            await self.plugin.shutdown()
            self.plugin = None
        if self.nats:
            try:
                await self.nats.drain()
            except Exception as e:
                logger.warning(f"Error closing NATS connection: {e}")
            self.nats = None
        if self.loop:
            await self.loop.stop()
        if self.ticker:
            await self.ticker.shutdown()
        if self.database:
            await self.database.close()

        logger.info("Pomodoro service stopped")


async def main(config_path: Optional[str] = None) -> None:
    """Entry point"""
    app = PomodoroApp(config_path)
    setup_logging(app.config)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers
            pass

    try:
        await app.start()
        await stop_event.wait()
        logger.info("Received shutdown signal")
    finally:
        await app.stop()


def run() -> None:
    """Console script entry point"""
    try:
        asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else None))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
