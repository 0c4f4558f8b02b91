"""
tests/unit/test_plugin.py

Tests for the TimerPlugin NATS surface.

Tests cover:
- Plugin initialization and shutdown
- NATS subscription management
- Command handling and replies
- Host signals
- Event forwarding
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from pomodoro.events import TIMER_FINISHED
from pomodoro.timers import IntentDispatcher, TimerPlugin


@pytest.fixture
def coordinator():
    coordinator = MagicMock()
    coordinator.set_visible = AsyncMock()
    coordinator.set_focused = AsyncMock()
    return coordinator


@pytest.fixture
def plugin(mock_nats, store, coordinator, event_bus):
    return TimerPlugin(mock_nats, IntentDispatcher(store), coordinator, event_bus)


@pytest.fixture
async def started(plugin):
    await plugin.initialize()
    yield plugin
    await plugin.shutdown()


# =============================================================================
# Plugin Lifecycle Tests
# =============================================================================

class TestPluginLifecycle:
    """Tests for initialize/shutdown."""

    def test_init_has_namespace(self, plugin):
        assert plugin.NAMESPACE == "pomodoro"
        assert plugin.emit_events is True

    @pytest.mark.asyncio
    async def test_initialize_subscribes(self, plugin, mock_nats):
        await plugin.initialize()

        subjects = [sub.subject for sub in mock_nats._subscriptions]
        assert subjects == [
            "pomodoro.command.*",
            "pomodoro.host.visibility",
            "pomodoro.host.focus",
        ]
        assert plugin._initialized is True

    @pytest.mark.asyncio
    async def test_shutdown_unsubscribes(self, plugin, mock_nats, event_bus):
        await plugin.initialize()
        subs = list(mock_nats._subscriptions)

        await plugin.shutdown()

        for sub in subs:
            sub.unsubscribe.assert_awaited_once()
        assert plugin._subscriptions == []

        # No longer forwarding
        await event_bus.emit(TIMER_FINISHED, {"id": "a", "label": "x"}, "test")
        mock_nats.publish.assert_not_called()


# =============================================================================
# Command Tests
# =============================================================================

class TestCommands:
    """Tests for pomodoro.command.<intent>."""

    @pytest.mark.asyncio
    async def test_create_replies(self, started, store, mock_message, published):
        msg = mock_message(
            "pomodoro.command.createTimer",
            {"label": "Focus", "durationMinutes": 25},
            reply_to="_INBOX.1",
        )

        await started._handle_command(msg)

        replies = published("_INBOX.1")
        assert len(replies) == 1
        assert replies[0]["success"] is True
        assert replies[0]["result"]["label"] == "Focus"
        assert len(store.timers) == 1

    @pytest.mark.asyncio
    async def test_reply_to_in_payload(self, started, store, mock_message, published):
        timer = await store.create("Focus", 1)
        msg = mock_message(
            "pomodoro.command.startTimer",
            {"id": timer.id, "reply_to": "replies.start"},
        )

        await started._handle_command(msg)

        assert published("replies.start") == [
            {"success": True, "result": {"changed": True}}
        ]

    @pytest.mark.asyncio
    async def test_error_reply(self, started, mock_message, published):
        msg = mock_message(
            "pomodoro.command.pauseTimer", {"id": "missing"}, reply_to="_INBOX.2"
        )

        await started._handle_command(msg)

        reply = published("_INBOX.2")[0]
        assert reply["success"] is False
        assert "missing" in reply["error"]

    @pytest.mark.asyncio
    async def test_invalid_json(self, started, mock_message, published):
        msg = mock_message("pomodoro.command.listTimers", raw=b"{nope", reply_to="_INBOX.3")

        await started._handle_command(msg)

        assert published("_INBOX.3") == [
            {"success": False, "error": "Invalid JSON payload"}
        ]

    @pytest.mark.asyncio
    async def test_no_reply_subject(self, started, mock_message, published):
        msg = mock_message("pomodoro.command.listTimers", {})

        await started._handle_command(msg)

        # Only event forwarding may publish; there is nowhere to reply
        assert all(
            call.args[0].startswith("pomodoro.event.")
            for call in started.nats.publish.call_args_list
        )


# =============================================================================
# Host Signal Tests
# =============================================================================

class TestHostSignals:
    """Tests for visibility/focus subjects."""

    @pytest.mark.asyncio
    async def test_visibility(self, started, coordinator, mock_message):
        await started._handle_visibility(
            mock_message("pomodoro.host.visibility", {"visible": False})
        )
        coordinator.set_visible.assert_awaited_once_with(False)

    @pytest.mark.asyncio
    async def test_focus(self, started, coordinator, mock_message):
        await started._handle_focus(
            mock_message("pomodoro.host.focus", {"focused": True})
        )
        coordinator.set_focused.assert_awaited_once_with(True)

    @pytest.mark.asyncio
    async def test_signal_without_field_ignored(self, started, coordinator, mock_message):
        await started._handle_visibility(mock_message("pomodoro.host.visibility", {}))
        coordinator.set_visible.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", ["false", "true", 0, 1, None])
    async def test_non_boolean_visibility_ignored(
        self, started, coordinator, mock_message, value, caplog
    ):
        await started._handle_visibility(
            mock_message("pomodoro.host.visibility", {"visible": value})
        )

        coordinator.set_visible.assert_not_called()
        assert "must be true or false" in caplog.text

    @pytest.mark.asyncio
    async def test_string_focus_ignored(self, started, coordinator, mock_message):
        await started._handle_focus(
            mock_message("pomodoro.host.focus", {"focused": "false"})
        )
        coordinator.set_focused.assert_not_called()


# =============================================================================
# Event Forwarding Tests
# =============================================================================

class TestEventForwarding:
    """Bus events are republished on pomodoro.event.<name>."""

    @pytest.mark.asyncio
    async def test_store_events_forwarded(self, started, store, published):
        timer = await store.create("Focus", 1)

        changed = published("pomodoro.event.timers-changed")
        assert len(changed) == 1
        assert changed[0]["event"] == "timers-changed"
        assert changed[0]["source"] == "store"
        assert changed[0]["timers"][0]["id"] == timer.id

    @pytest.mark.asyncio
    async def test_finished_forwarded(self, started, event_bus, published):
        await event_bus.emit(TIMER_FINISHED, {"id": "abc", "label": "Focus"}, "reconciler")

        finished = published("pomodoro.event.timer-finished")
        assert finished[0]["id"] == "abc"
        assert finished[0]["label"] == "Focus"

    @pytest.mark.asyncio
    async def test_events_disabled(self, mock_nats, store, coordinator, event_bus):
        plugin = TimerPlugin(
            mock_nats, IntentDispatcher(store), coordinator, event_bus,
            config={"emit_events": False},
        )
        await plugin.initialize()

        await store.create("Focus", 1)

        mock_nats.publish.assert_not_called()
        await plugin.shutdown()
