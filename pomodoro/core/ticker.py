"""
Background Ticker

An out-of-process tick source. The ticker runs in its own OS process so it
keeps its one-second cadence when the host's cooperative loop is throttled
or starved. The two sides share no memory; they exchange small dict
messages over a pair of multiprocessing queues.

Architecture:
    Host process                          Ticker process
        BackgroundTicker                      run_ticker()
            │  {"type": "start"}                  │
            │  {"type": "stop"}                   │
            │  {"type": "status"}                 │
            │  {"type": "close"}      ────────▶   │
            │                                     │
            │  ◀────────  {"type": "ready"}       (once, at startup)
            │             {"type": "tick", "timestamp": ms}
            │             {"type": "status", "isRunning": bool}
            │             {"type": "error", "message": str}

Failures never cross the boundary as exceptions: a ticker that cannot be
created, errors, or dies is reported (spawn() returns False, or on_error
fires) and the host falls back to foreground-only ticking.
"""

import asyncio
import logging
import multiprocessing
import queue
import signal
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

# Host -> ticker
MSG_START = "start"
MSG_STOP = "stop"
MSG_STATUS = "status"
MSG_CLOSE = "close"

# Ticker -> host
MSG_READY = "ready"
MSG_TICK = "tick"
MSG_ERROR = "error"


# ============================================================================
# Ticker process side
# ============================================================================

def run_ticker(commands, events, interval: float = 1.0) -> None:
    """
    Ticker loop.

    Emits ``ready`` once, then serves commands until ``close``. While
    started, a ``tick`` is emitted every ``interval`` seconds. If the
    process was suspended past one or more ticks the cadence restarts from
    now instead of bursting the missed ticks; the host measures elapsed
    wall-clock time itself.

    Args:
        commands: Queue of host -> ticker messages.
        events: Queue of ticker -> host messages.
        interval: Seconds between ticks.
    """
    running = False
    next_tick = 0.0

    events.put({"type": MSG_READY})

    while True:
        timeout = None
        if running:
            timeout = max(0.0, next_tick - time.monotonic())

        try:
            message = commands.get(timeout=timeout)
        except queue.Empty:
            events.put({"type": MSG_TICK, "timestamp": int(time.time() * 1000)})
            next_tick += interval
            now = time.monotonic()
            if next_tick <= now:
                next_tick = now + interval
            continue

        kind = message.get("type") if isinstance(message, dict) else None

        if kind == MSG_START:
            if not running:
                running = True
                next_tick = time.monotonic() + interval
        elif kind == MSG_STOP:
            running = False
        elif kind == MSG_STATUS:
            events.put({"type": MSG_STATUS, "isRunning": running})
        elif kind == MSG_CLOSE:
            break
        else:
            logger.warning(f"Ticker ignoring unknown message: {message!r}")


def _ticker_main(commands, events, interval: float, log_level: int) -> None:
    """
    Ticker process entry point.

    This runs IN THE SUBPROCESS. Interrupts are ignored so the host decides
    when the ticker goes away; any error ends the loop and is reported as
    an ``error`` message.
    """
    logging.basicConfig(
        level=log_level,
        format='[%(asctime)s] [%(levelname)s] [ticker] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    signal.signal(signal.SIGINT, signal.SIG_IGN)

    try:
        run_ticker(commands, events, interval)
    except Exception as e:
        logger.error(f"Ticker loop failed: {e}", exc_info=True)
        events.put({"type": MSG_ERROR, "message": str(e) or e.__class__.__name__})


# ============================================================================
# Host side
# ============================================================================

class TickerState(Enum):
    """Background ticker states"""
    STOPPED = "stopped"  # No process
    STARTING = "starting"  # Process spawned, waiting for ready
    READY = "ready"  # Process up and accepting commands
    FAILED = "failed"  # Unusable; host must tick in the foreground


class BackgroundTicker:
    """
    Host-side handle for the ticker process.

    Args:
        interval: Seconds between ticks in the ticker process.
        on_tick: Async callback receiving each tick's timestamp (ms).
        on_error: Async callback receiving a failure description once the
            ticker has been ready and then fails.
        ready_timeout: Seconds spawn() waits for the ready message.
        start_method: multiprocessing start method ('spawn', 'fork', ...).
        poll_interval: Seconds the reader blocks on the event queue per poll.
    """

    def __init__(
        self,
        interval: float = 1.0,
        on_tick: Optional[Callable[[int], Awaitable[None]]] = None,
        on_error: Optional[Callable[[str], Awaitable[None]]] = None,
        ready_timeout: float = 2.0,
        start_method: str = "spawn",
        poll_interval: float = 0.25,
    ):
        self.interval = interval
        self.on_tick = on_tick
        self.on_error = on_error
        self.ready_timeout = ready_timeout
        self.start_method = start_method
        self.poll_interval = poll_interval

        self.state = TickerState.STOPPED
        self.ticking = False
        self.last_error: Optional[str] = None
        self.ticks_received = 0

        self.process: Optional[multiprocessing.Process] = None
        self._commands = None
        self._events = None
        self._reader_task: Optional[asyncio.Task] = None
        self._settled: Optional[asyncio.Event] = None
        self._ready_seen = False
        self._closing = False
        self._status_waiters: List[asyncio.Future] = []

    @property
    def available(self) -> bool:
        """True when the ticker process is up and accepting commands."""
        return self.state is TickerState.READY

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process else None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def spawn(self) -> bool:
        """
        Create the ticker process and wait for its ready message.

        Returns:
            True if the ticker is ready; False if it could not be created,
            reported an error, or did not become ready in time.
        """
        if self.state in (TickerState.STARTING, TickerState.READY):
            return self.available

        self.state = TickerState.STARTING
        self._closing = False
        self._ready_seen = False
        self._settled = asyncio.Event()

        try:
            ctx = multiprocessing.get_context(self.start_method)
            self._commands = ctx.Queue()
            self._events = ctx.Queue()
            self.process = ctx.Process(
                target=_ticker_main,
                args=(self._commands, self._events, self.interval,
                      logging.getLogger().getEffectiveLevel()),
                name="pomodoro-ticker",
                daemon=True
            )
            self.process.start()
        except Exception as e:
            self.process = None
            await self._fail(f"could not start ticker process: {e}")
            await self._teardown()
            return False

        logger.info(f"Background ticker spawned with PID {self.process.pid}")
        self._reader_task = asyncio.create_task(self._read_events())

        try:
            await asyncio.wait_for(self._settled.wait(), timeout=self.ready_timeout)
        except asyncio.TimeoutError:
            await self._fail(f"ticker not ready after {self.ready_timeout}s")

        if self.state is not TickerState.STARTING:
            await self._teardown()
            return False

        self.state = TickerState.READY
        logger.info("Background ticker is ready")
        return True

    async def shutdown(self, timeout: float = 2.0) -> None:
        """
        Close the ticker process. Safe to call in any state.
        """
        if self.state is TickerState.STOPPED and self.process is None:
            return

        if self.process is not None and self.process.is_alive():
            self._put({"type": MSG_CLOSE})

        await self._teardown(timeout)
        if self.state is not TickerState.FAILED:
            self.state = TickerState.STOPPED
        logger.info("Background ticker shut down")

    async def _teardown(self, timeout: float = 2.0) -> None:
        self._closing = True
        self.ticking = False

        process = self.process
        if process is not None:
            await asyncio.to_thread(process.join, timeout)
            if process.is_alive():
                logger.warning("Ticker did not exit in time, terminating")
                process.terminate()
                await asyncio.to_thread(process.join, timeout)
            self.process = None

        if self._reader_task is not None:
            if self._reader_task is not asyncio.current_task():
                self._reader_task.cancel()
                try:
                    await self._reader_task
                except asyncio.CancelledError:
                    pass
            self._reader_task = None

        for q in (self._commands, self._events):
            if q is not None:
                q.close()
                q.cancel_join_thread()
        self._commands = None
        self._events = None

        for waiter in self._status_waiters:
            if not waiter.done():
                waiter.set_result(None)
        self._status_waiters.clear()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def start(self) -> bool:
        """
        Ask the ticker to start emitting ticks. Idempotent.

        Returns:
            True if the command was delivered.
        """
        if not self.available:
            return False
        if not await self._send({"type": MSG_START}):
            return False
        if not self.ticking:
            logger.debug("Background ticker started")
        self.ticking = True
        return True

    async def stop(self) -> bool:
        """
        Ask the ticker to stop emitting ticks. Idempotent, never raises.

        A tick already in the queue may still arrive after this returns.
        """
        was_ticking = self.ticking
        self.ticking = False
        if not self.available:
            return False
        if not await self._send({"type": MSG_STOP}):
            return False
        if was_ticking:
            logger.debug("Background ticker stopped")
        return True

    async def request_status(self, timeout: float = 1.0) -> Optional[bool]:
        """
        Ask the ticker whether it is emitting ticks.

        Returns:
            The ticker's isRunning flag, or None if unavailable or no reply
            arrived in time.
        """
        if not self.available:
            return None

        waiter = asyncio.get_running_loop().create_future()
        self._status_waiters.append(waiter)

        if not await self._send({"type": MSG_STATUS}):
            self._discard_waiter(waiter)
            return None

        try:
            return await asyncio.wait_for(waiter, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"No status reply from ticker within {timeout}s")
            self._discard_waiter(waiter)
            return None

    def _discard_waiter(self, waiter: asyncio.Future) -> None:
        if waiter in self._status_waiters:
            self._status_waiters.remove(waiter)

    def _put(self, message: Dict[str, Any]) -> Optional[str]:
        try:
            self._commands.put(message)
        except Exception as e:
            return str(e) or e.__class__.__name__
        return None

    async def _send(self, message: Dict[str, Any]) -> bool:
        error = self._put(message)
        if error:
            await self._fail(f"could not send {message['type']!r}: {error}")
            return False
        return True

    # ------------------------------------------------------------------
    # Incoming messages
    # ------------------------------------------------------------------

    async def _read_events(self) -> None:
        """Forward ticker messages until closed or the process dies."""
        while not self._closing:
            try:
                message = await asyncio.to_thread(
                    self._events.get, True, self.poll_interval
                )
            except queue.Empty:
                if self._closing:
                    return
                if self.process is not None and not self.process.is_alive():
                    await self._fail(
                        f"ticker process exited (code {self.process.exitcode})"
                    )
                    return
                continue
            except (EOFError, OSError, ValueError) as e:
                if not self._closing:
                    await self._fail(f"lost connection to ticker: {e}")
                return

            await self._handle_message(message)

    async def _handle_message(self, message: Any) -> None:
        kind = message.get("type") if isinstance(message, dict) else None

        if kind == MSG_READY:
            if self._ready_seen:
                logger.warning("Ticker sent a second ready message")
                return
            self._ready_seen = True
            if self._settled is not None:
                self._settled.set()

        elif kind == MSG_TICK:
            self.ticks_received += 1
            if self.on_tick:
                try:
                    await self.on_tick(message.get("timestamp"))
                except Exception as e:
                    logger.exception(f"Error in tick callback: {e}")

        elif kind == MSG_STATUS:
            is_running = bool(message.get("isRunning"))
            waiters, self._status_waiters = self._status_waiters, []
            for waiter in waiters:
                if not waiter.done():
                    waiter.set_result(is_running)

        elif kind == MSG_ERROR:
            await self._fail(message.get("message") or "unknown ticker error")

        else:
            logger.warning(f"Ignoring unknown ticker message: {message!r}")

    async def _fail(self, reason: str) -> None:
        """Mark the ticker unusable and notify once if it had been ready."""
        if self.state is TickerState.FAILED:
            return

        was_ready = self.state is TickerState.READY
        self.state = TickerState.FAILED
        self.ticking = False
        self.last_error = reason
        logger.error(f"Background ticker failed: {reason}")

        if self._settled is not None:
            self._settled.set()

        if was_ready and self.on_error:
            try:
                await self.on_error(reason)
            except Exception as e:
                logger.exception(f"Error in ticker error callback: {e}")

    def __repr__(self) -> str:
        return (
            f"<BackgroundTicker state={self.state.value} "
            f"ticking={self.ticking} pid={self.pid}>"
        )
