"""
Global pytest configuration and fixtures for the pomodoro tests

Provides:
- Deterministic clock
- Event bus with a recorder
- In-memory storage fake and a real SQLite database
- Mock NATS client and messages
"""

import copy
import json
from typing import List
from unittest.mock import AsyncMock, MagicMock

import pytest

from pomodoro.common.database import TimerDatabase
from pomodoro.core.clock import FakeClock
from pomodoro.core.reconciler import TickReconciler
from pomodoro.events import Event, EventBus
from pomodoro.timers.store import TimerStore


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom settings"""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "core: Tick pipeline tests")


# ============================================================================
# Time and Events
# ============================================================================

@pytest.fixture
def clock():
    """Clock that only moves when told to"""
    return FakeClock(start_ms=1_700_000_000_000)


@pytest.fixture
def event_bus():
    return EventBus()


class EventRecorder:
    """Collects every event published on a bus"""

    def __init__(self, bus: EventBus):
        self.events: List[Event] = []
        bus.subscribe("*", self._record, "recorder")

    async def _record(self, event: Event):
        self.events.append(event)

    def named(self, name: str) -> List[Event]:
        return [e for e in self.events if e.name == name]

    def names(self) -> List[str]:
        return [e.name for e in self.events]

    def clear(self):
        self.events.clear()


@pytest.fixture
def recorder(event_bus):
    return EventRecorder(event_bus)


# ============================================================================
# Storage
# ============================================================================

@pytest.fixture
def mock_database():
    """
    Storage fake with the TimerDatabase kv interface.

    Values are JSON round-tripped so tests see exactly what would be
    persisted. Set ``mock_database.fail_writes = True`` to make kv_set raise.
    """
    db = MagicMock()
    db.data = {}
    db.fail_writes = False

    async def kv_set(namespace, key, value):
        if db.fail_writes:
            raise OSError("disk full")
        db.data[(namespace, key)] = json.loads(json.dumps(value))

    async def kv_get(namespace, key):
        if (namespace, key) not in db.data:
            return {"exists": False, "value": None}
        return {"exists": True, "value": copy.deepcopy(db.data[(namespace, key)])}

    db.kv_set = AsyncMock(side_effect=kv_set)
    db.kv_get = AsyncMock(side_effect=kv_get)
    return db


@pytest.fixture
async def temp_database(tmp_path):
    """
    Connected TimerDatabase on a temporary SQLite file.

    Yields:
        TimerDatabase: Connected database, closed after the test
    """
    db = TimerDatabase(str(tmp_path / "pomodoro-test.db"))
    await db.connect()
    yield db
    await db.close()


@pytest.fixture
def store(mock_database, event_bus):
    return TimerStore(mock_database, event_bus)


@pytest.fixture
def reconciler(store, event_bus, clock):
    return TickReconciler(store, event_bus, clock=clock)


# ============================================================================
# NATS
# ============================================================================

@pytest.fixture
def mock_nats():
    """Create a mock NATS client for testing."""
    nats = AsyncMock()
    nats.publish = AsyncMock()

    # Track subscriptions
    nats._subscriptions = []

    async def mock_subscribe(subject, cb=None):
        sub = MagicMock()
        sub.subject = subject
        sub.callback = cb
        sub.unsubscribe = AsyncMock()
        nats._subscriptions.append(sub)
        return sub

    nats.subscribe = mock_subscribe
    return nats


@pytest.fixture
def mock_message():
    """Factory for creating mock NATS messages."""
    def _make_message(subject: str, data=None, reply_to: str = None, raw: bytes = None):
        msg = MagicMock()
        msg.subject = subject
        msg.data = raw if raw is not None else json.dumps(data or {}).encode()
        msg.reply = reply_to
        return msg
    return _make_message


@pytest.fixture
def published(mock_nats):
    """Decoded payloads published on one subject"""
    def _published(subject: str):
        return [
            json.loads(call.args[1].decode())
            for call in mock_nats.publish.call_args_list
            if call.args[0] == subject
        ]
    return _published
