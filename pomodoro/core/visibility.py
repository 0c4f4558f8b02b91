"""
pomodoro/core/visibility.py

Chooses which tick source drives reconciliation.

Two producers feed the reconciler: the cooperative foreground loop and the
out-of-process background ticker. Exactly one of them is authoritative at
any moment; ticks from the other are dropped, so the same wall-clock
interval is never counted twice. The interval a dropped tick covered is
not lost: the baseline reset or forced reconciliation performed on every
transition accounts for it.

Host signals:
    visible  False -> True   ticker stop, foreground authoritative, reconcile
    visible  True  -> False  reset baseline, background authoritative,
                             ticker start/stop depending on running timers
    focused  True  -> False  reset baseline
    focused  False -> True   reconcile (only while visible)

While hidden, the baseline is reset whenever the idle ticker is started
(nothing ran while it was idle), and the ticker is stopped once a
background pass leaves no timer running.
"""

import logging
from enum import Enum
from typing import Optional

from ..events import TICKER_UNAVAILABLE, EventBus
from ..timers.store import TimerStore
from .reconciler import ReconcileResult, TickReconciler
from .ticker import BackgroundTicker

logger = logging.getLogger(__name__)


class TickSource(Enum):
    """Producers of reconciliation ticks"""
    FOREGROUND = "foreground"
    BACKGROUND = "background"


class VisibilityCoordinator:
    """
    Authoritative tick-source selector.

    Args:
        reconciler: Consumer of authoritative ticks.
        store: Timer store, consulted for running timers.
        event_bus: Bus for ticker-unavailable events.
        ticker: Background ticker, or None for foreground-only ticking.
    """

    SOURCE = "visibility"

    def __init__(
        self,
        reconciler: TickReconciler,
        store: TimerStore,
        event_bus: EventBus,
        ticker: Optional[BackgroundTicker] = None,
    ):
        self.reconciler = reconciler
        self.store = store
        self.event_bus = event_bus
        self.ticker = ticker

        self.visible = True
        self.focused = True
        self.authoritative = TickSource.FOREGROUND
        self.dropped_ticks = 0

    @property
    def ticker_available(self) -> bool:
        return self.ticker is not None and self.ticker.available

    # =========================================================================
    # Ticks
    # =========================================================================

    async def on_tick(self, source: TickSource) -> Optional[ReconcileResult]:
        """
        Reconcile if ``source`` is authoritative, otherwise drop the tick.

        Returns:
            The pass result, or None if the tick was dropped.
        """
        if source is not self.authoritative:
            self.dropped_ticks += 1
            logger.debug(
                f"Dropped {source.value} tick ({self.authoritative.value} is authoritative)"
            )
            return None
        return await self.reconciler.reconcile()

    async def foreground_tick(self) -> None:
        """ForegroundLoop callback."""
        await self.on_tick(TickSource.FOREGROUND)

    async def background_tick(self, timestamp: Optional[int] = None) -> None:
        """BackgroundTicker callback."""
        result = await self.on_tick(TickSource.BACKGROUND)
        if result is not None and result.finished:
            # The last running timer may have just completed
            await self.refresh()

    # =========================================================================
    # Host signals
    # =========================================================================

    async def set_visible(self, visible: bool) -> None:
        """Handle a foreground-active signal; repeats are ignored."""
        visible = bool(visible)
        if visible == self.visible:
            return

        self.visible = visible
        if visible:
            await self._enter_foreground()
        else:
            await self._enter_background()

    async def set_focused(self, focused: bool) -> None:
        """
        Handle focus changes that don't background the context.

        Cooperative scheduling may stall while unfocused, so the baseline is
        reset on blur and a pass is forced on focus if still visible.
        """
        focused = bool(focused)
        if focused == self.focused:
            return

        self.focused = focused
        if not focused:
            self.reconciler.reset_baseline()
        elif self.visible:
            await self.reconciler.reconcile()

    async def _enter_background(self) -> None:
        self.reconciler.reset_baseline()

        if not self.ticker_available:
            logger.info("Backgrounded without a background ticker; ticking in the foreground")
            self.authoritative = TickSource.FOREGROUND
            return

        self.authoritative = TickSource.BACKGROUND
        logger.debug("Background ticker is authoritative")
        await self._sync_ticker()

    async def _enter_foreground(self) -> None:
        if self.ticker is not None:
            await self.ticker.stop()

        self.authoritative = TickSource.FOREGROUND
        logger.debug("Foreground loop is authoritative")
        await self.reconciler.reconcile()

    async def _sync_ticker(self) -> None:
        if self.store.has_running():
            if not self.ticker.ticking:
                # Nothing was running while the ticker sat idle
                self.reconciler.reset_baseline()
            await self.ticker.start()
        else:
            await self.ticker.stop()

    async def refresh(self) -> None:
        """
        Re-evaluate ticker start/stop after the running set changed.

        Only matters while backgrounded with the ticker authoritative.
        """
        if (
            not self.visible
            and self.authoritative is TickSource.BACKGROUND
            and self.ticker_available
        ):
            await self._sync_ticker()

    async def ticker_failed(self, reason: str) -> None:
        """
        Fall back to foreground-only ticking.

        Wired as the BackgroundTicker's on_error callback.
        """
        logger.warning(f"Falling back to foreground ticking: {reason}")
        self.authoritative = TickSource.FOREGROUND
        await self.event_bus.emit(TICKER_UNAVAILABLE, {"reason": reason}, self.SOURCE)
