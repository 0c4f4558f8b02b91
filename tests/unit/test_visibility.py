"""
tests/unit/test_visibility.py

Unit tests for VisibilityCoordinator.

Tests cover:
- Authoritative source selection and dropped ticks
- Visibility transitions (ticker start/stop, forced reconciliation)
- Time charged when timers start, pause or finish while hidden
- Focus transitions
- Ticker failure fallback
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from pomodoro.core import TickSource, VisibilityCoordinator
from pomodoro.events import TICKER_UNAVAILABLE
from pomodoro.timers import IntentDispatcher

pytestmark = pytest.mark.core


@pytest.fixture
def ticker():
    """Background ticker double that is up and tracks whether it is ticking"""
    ticker = MagicMock()
    ticker.available = True
    ticker.ticking = False

    async def start():
        ticker.ticking = True
        return True

    async def stop():
        ticker.ticking = False
        return True

    ticker.start = AsyncMock(side_effect=start)
    ticker.stop = AsyncMock(side_effect=stop)
    return ticker


@pytest.fixture
def coordinator(reconciler, store, event_bus, ticker):
    return VisibilityCoordinator(reconciler, store, event_bus, ticker)


async def running(store, minutes=25):
    timer = await store.create("Focus", minutes)
    await store.start(timer.id)
    return timer


# =============================================================================
# Tick selection
# =============================================================================

class TestTickSelection:
    """Only the authoritative source drives reconciliation."""

    def test_foreground_authoritative_initially(self, coordinator):
        assert coordinator.visible is True
        assert coordinator.authoritative is TickSource.FOREGROUND

    @pytest.mark.asyncio
    async def test_foreground_tick_reconciles(self, coordinator, store, clock):
        timer = await running(store)
        coordinator.reconciler.reset_baseline()

        clock.advance(seconds=1)
        await coordinator.foreground_tick()

        assert timer.time_spent == 1

    @pytest.mark.asyncio
    async def test_background_tick_dropped_while_visible(self, coordinator, store, clock):
        timer = await running(store)
        coordinator.reconciler.reset_baseline()

        clock.advance(seconds=1)
        result = await coordinator.on_tick(TickSource.BACKGROUND)

        assert result is None
        assert coordinator.dropped_ticks == 1
        assert timer.time_spent == 0

    @pytest.mark.asyncio
    async def test_foreground_tick_dropped_while_hidden(self, coordinator, store, clock):
        timer = await running(store)
        await coordinator.set_visible(False)

        clock.advance(seconds=1)
        await coordinator.foreground_tick()
        assert timer.time_spent == 0

        await coordinator.background_tick(timestamp=123)
        assert timer.time_spent == 1


# =============================================================================
# Visibility transitions
# =============================================================================

class TestVisibility:
    """Hidden/visible transitions."""

    @pytest.mark.asyncio
    async def test_hide_with_running_timer_starts_ticker(self, coordinator, store, ticker):
        await running(store)

        await coordinator.set_visible(False)

        assert coordinator.authoritative is TickSource.BACKGROUND
        ticker.start.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_hide_without_running_timer_stops_ticker(self, coordinator, store, ticker):
        await store.create("Paused", 5)

        await coordinator.set_visible(False)

        ticker.start.assert_not_called()
        ticker.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_hide_resets_baseline(self, coordinator, store, clock):
        timer = await running(store)
        coordinator.reconciler.reset_baseline()

        # Time passing before the hide is not charged to the next pass
        clock.advance(seconds=30)
        await coordinator.set_visible(False)
        clock.advance(seconds=1)
        await coordinator.background_tick()

        assert timer.time_spent == 1

    @pytest.mark.asyncio
    async def test_show_stops_ticker_and_reconciles(self, coordinator, store, ticker, clock):
        timer = await running(store)
        await coordinator.set_visible(False)
        ticker.stop.reset_mock()

        # Ticker was starved: no background ticks for 37 seconds
        clock.advance(seconds=37)
        await coordinator.set_visible(True)

        ticker.stop.assert_awaited_once()
        assert coordinator.authoritative is TickSource.FOREGROUND
        assert timer.time_spent == 37

    @pytest.mark.asyncio
    async def test_repeated_signal_ignored(self, coordinator, store, ticker):
        await running(store)

        await coordinator.set_visible(False)
        await coordinator.set_visible(False)

        ticker.start.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_refresh_follows_running_set(self, coordinator, store, ticker):
        timer = await store.create("Focus", 5)
        await coordinator.set_visible(False)
        ticker.start.assert_not_called()

        await store.start(timer.id)
        await coordinator.refresh()
        ticker.start.assert_awaited_once()

        await store.pause(timer.id)
        ticker.stop.reset_mock()
        await coordinator.refresh()
        ticker.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_refresh_ignored_while_visible(self, coordinator, store, ticker):
        await running(store)
        await coordinator.refresh()

        ticker.start.assert_not_called()
        ticker.stop.assert_not_called()


# =============================================================================
# Charging while hidden
# =============================================================================

class TestHiddenCharging:
    """Time charged to timers whose running state changes while hidden."""

    @pytest.fixture
    def dispatcher(self, store, coordinator):
        return IntentDispatcher(store, on_change=coordinator.refresh)

    @pytest.mark.asyncio
    async def test_start_while_hidden_charges_only_running_time(
        self, coordinator, dispatcher, store, ticker, clock
    ):
        timer = await store.create("Focus", 25)
        await coordinator.set_visible(False)
        assert ticker.ticking is False

        # Idle in the background before anything runs
        clock.advance(seconds=600)
        await dispatcher.dispatch("startTimer", {"id": timer.id})
        assert ticker.ticking is True

        clock.advance(seconds=1)
        await coordinator.background_tick()

        assert timer.time_spent == 1
        assert timer.remaining_time == 25 * 60 - 1

    @pytest.mark.asyncio
    async def test_pause_and_resume_while_hidden(
        self, coordinator, dispatcher, store, ticker, clock
    ):
        timer = await running(store)
        await coordinator.set_visible(False)

        clock.advance(seconds=1)
        await coordinator.background_tick()
        await dispatcher.dispatch("pauseTimer", {"id": timer.id})
        assert ticker.ticking is False

        clock.advance(seconds=300)
        await dispatcher.dispatch("startTimer", {"id": timer.id})
        clock.advance(seconds=2)
        await coordinator.background_tick()

        assert timer.time_spent == 3

    @pytest.mark.asyncio
    async def test_ticker_stops_when_last_timer_finishes(
        self, coordinator, store, ticker, clock
    ):
        timer = await running(store, minutes=1)
        await coordinator.set_visible(False)
        assert ticker.ticking is True

        clock.advance(seconds=60)
        await coordinator.background_tick()

        assert timer.remaining_time == 0
        assert ticker.ticking is False
        ticker.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_ticker_keeps_running_while_others_run(
        self, coordinator, store, ticker, clock
    ):
        await running(store, minutes=1)
        await running(store, minutes=5)
        await coordinator.set_visible(False)

        clock.advance(seconds=60)
        await coordinator.background_tick()

        assert ticker.ticking is True
        ticker.stop.assert_not_called()


# =============================================================================
# Focus
# =============================================================================

class TestFocus:
    """Blur/focus without a visibility change."""

    @pytest.mark.asyncio
    async def test_blur_resets_and_focus_reconciles(self, coordinator, store, clock):
        timer = await running(store)

        await coordinator.set_focused(False)
        clock.advance(seconds=12)
        await coordinator.set_focused(True)

        assert timer.time_spent == 12

    @pytest.mark.asyncio
    async def test_focus_while_hidden_does_not_reconcile(self, coordinator, store, clock):
        timer = await running(store)
        await coordinator.set_focused(False)
        await coordinator.set_visible(False)

        clock.advance(seconds=12)
        await coordinator.set_focused(True)

        assert timer.time_spent == 0


# =============================================================================
# Fallback
# =============================================================================

class TestTickerFallback:
    """Foreground-only ticking when the ticker is unusable."""

    @pytest.mark.asyncio
    async def test_no_ticker_keeps_foreground_authoritative(
        self, reconciler, store, event_bus, clock
    ):
        coordinator = VisibilityCoordinator(reconciler, store, event_bus, ticker=None)
        timer = await running(store)

        await coordinator.set_visible(False)
        assert coordinator.authoritative is TickSource.FOREGROUND

        clock.advance(seconds=1)
        await coordinator.foreground_tick()
        assert timer.time_spent == 1

    @pytest.mark.asyncio
    async def test_unavailable_ticker_not_started(self, coordinator, store, ticker):
        ticker.available = False
        await running(store)

        await coordinator.set_visible(False)

        assert coordinator.authoritative is TickSource.FOREGROUND
        ticker.start.assert_not_called()

    @pytest.mark.asyncio
    async def test_ticker_failed_publishes_and_falls_back(self, coordinator, store, recorder):
        await running(store)
        await coordinator.set_visible(False)
        recorder.clear()

        await coordinator.ticker_failed("ticker process exited (code 1)")

        assert coordinator.authoritative is TickSource.FOREGROUND
        events = recorder.named(TICKER_UNAVAILABLE)
        assert len(events) == 1
        assert events[0].data == {"reason": "ticker process exited (code 1)"}
