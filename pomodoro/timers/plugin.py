"""
pomodoro/timers/plugin.py

NATS surface for the timer service.

NATS Subjects:
    Command Handlers (request/reply, JSON payloads):
        pomodoro.command.createTimer - {"label", "durationMinutes"}
        pomodoro.command.startTimer - {"id"}
        pomodoro.command.pauseTimer - {"id"}
        pomodoro.command.markDone - {"id"}
        pomodoro.command.deleteTimer - {"id"}
        pomodoro.command.bulkDelete - {"ids"}
        pomodoro.command.switchTab - {"tab"}
        pomodoro.command.listTimers - {}

    Host Signals:
        pomodoro.host.visibility - {"visible": bool}
        pomodoro.host.focus - {"focused": bool}

    Events (Published):
        pomodoro.event.timers-changed - Full re-render needed
        pomodoro.event.timers-ticked - Numeric/status refresh
        pomodoro.event.timer-finished - A countdown reached zero
        pomodoro.event.storage-error - Persisting timers failed
        pomodoro.event.ticker-unavailable - Background ticking unavailable
"""

import json
import logging
from typing import Any, Dict, Optional

from nats.aio.client import Client as NATS

from ..events import Event, EventBus
from .intents import IntentDispatcher


class TimerPlugin:
    """
    Bridges NATS to the intent dispatcher, the visibility coordinator and
    the in-process event bus.

    Args:
        nats_client: Connected NATS client.
        dispatcher: Intent dispatch table.
        coordinator: VisibilityCoordinator receiving host signals.
        event_bus: In-process bus whose events are republished on NATS.
        config: Optional configuration dictionary.
    """

    NAMESPACE = "pomodoro"
    VERSION = "1.0.0"
    DESCRIPTION = "Countdown timers with background-safe ticking"

    SUBJECT_COMMANDS = "pomodoro.command.*"
    SUBJECT_VISIBILITY = "pomodoro.host.visibility"
    SUBJECT_FOCUS = "pomodoro.host.focus"
    EVENT_PREFIX = "pomodoro.event"

    BRIDGE_NAME = "nats-bridge"

    def __init__(
        self,
        nats_client: NATS,
        dispatcher: IntentDispatcher,
        coordinator,
        event_bus: EventBus,
        config: Optional[Dict[str, Any]] = None,
    ):
        self.nats = nats_client
        self.dispatcher = dispatcher
        self.coordinator = coordinator
        self.event_bus = event_bus
        self.config = config or {}
        self.logger = logging.getLogger(f"plugin.{self.NAMESPACE}")

        self.emit_events = self.config.get("emit_events", True)

        self._subscriptions = []
        self._initialized = False

    async def initialize(self) -> None:
        """
        Subscribe to command and host-signal subjects and start forwarding
        bus events to NATS.
        """
        self.logger.info(f"Initializing {self.NAMESPACE} plugin v{self.VERSION}")

        sub = await self.nats.subscribe(self.SUBJECT_COMMANDS, cb=self._handle_command)
        self._subscriptions.append(sub)

        sub = await self.nats.subscribe(self.SUBJECT_VISIBILITY, cb=self._handle_visibility)
        self._subscriptions.append(sub)

        sub = await self.nats.subscribe(self.SUBJECT_FOCUS, cb=self._handle_focus)
        self._subscriptions.append(sub)

        if self.emit_events:
            self.event_bus.subscribe("*", self._forward_event, self.BRIDGE_NAME)

        self._initialized = True
        self.logger.info(f"{self.NAMESPACE} plugin initialized")

    async def shutdown(self) -> None:
        """
        Unsubscribe from NATS subjects and stop forwarding events.
        """
        self.logger.info(f"Shutting down {self.NAMESPACE} plugin")

        for sub in self._subscriptions:
            try:
                await sub.unsubscribe()
            except Exception as e:
                self.logger.warning(f"Error unsubscribing: {e}")
        self._subscriptions.clear()

        self.event_bus.unsubscribe_all(self.BRIDGE_NAME)
        self._initialized = False

    # =========================================================================
    # Handlers
    # =========================================================================

    def _decode(self, msg) -> Optional[Dict[str, Any]]:
        try:
            data = json.loads(msg.data.decode()) if msg.data else {}
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            self.logger.error(f"Invalid JSON on {msg.subject}: {e}")
            return None
        if not isinstance(data, dict):
            self.logger.error(f"Expected a JSON object on {msg.subject}")
            return None
        return data

    async def _handle_command(self, msg) -> None:
        """
        Handle pomodoro.command.<intent>.

        The reply goes to the NATS reply subject, or to a "reply_to" field
        in the payload when the request was published without one.
        """
        intent = msg.subject.rsplit(".", 1)[-1]
        data = self._decode(msg)
        reply_to = getattr(msg, "reply", None)

        if data is None:
            await self._send_reply(reply_to, {
                "success": False,
                "error": "Invalid JSON payload"
            })
            return

        payload_reply = data.pop("reply_to", None)
        reply_to = reply_to or payload_reply

        try:
            reply = await self.dispatcher.dispatch(intent, data)
        except Exception as e:
            self.logger.exception(f"Error handling {intent}: {e}")
            reply = {"success": False, "error": f"An error occurred handling {intent}"}

        await self._send_reply(reply_to, reply)

    async def _handle_visibility(self, msg) -> None:
        visible = self._signal_flag(msg, "visible")
        if visible is None:
            return
        try:
            await self.coordinator.set_visible(visible)
        except Exception as e:
            self.logger.exception(f"Error handling visibility change: {e}")

    async def _handle_focus(self, msg) -> None:
        focused = self._signal_flag(msg, "focused")
        if focused is None:
            return
        try:
            await self.coordinator.set_focused(focused)
        except Exception as e:
            self.logger.exception(f"Error handling focus change: {e}")

    def _signal_flag(self, msg, name: str) -> Optional[bool]:
        """The boolean ``name`` field of a host signal, or None if unusable."""
        data = self._decode(msg)
        if data is None:
            return None
        value = data.get(name)
        if not isinstance(value, bool):
            self.logger.warning(
                f"Ignoring {msg.subject}: '{name}' must be true or false, got {value!r}"
            )
            return None
        return value

    # =========================================================================
    # Utility Methods
    # =========================================================================

    async def _send_reply(self, reply_to: Optional[str], response: dict) -> None:
        if reply_to:
            await self.nats.publish(reply_to, json.dumps(response).encode())

    async def _forward_event(self, event: Event) -> None:
        """Republish a bus event on pomodoro.event.<name>."""
        subject = f"{self.EVENT_PREFIX}.{event.name}"
        await self.nats.publish(subject, json.dumps(event.to_dict()).encode())
