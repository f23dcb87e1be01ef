from __future__ import annotations

import os
from typing import Any, Optional

import pytest

# Importing `app` builds a module-level application; keep it off Redis in tests.
os.environ.setdefault("REGISTRY_BACKEND", "memory")

from backend import MemoryRoomRegistry  # noqa: E402
from broadcast import BroadcastRouter  # noqa: E402
from session_manager import SessionManager  # noqa: E402
from sessions import ConnectionTable, Session  # noqa: E402


class RecordingTransport:
    """Stands in for a WebSocket and keeps every frame sent to it."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    async def send_json(self, data: dict[str, Any]) -> None:
        self.sent.append(data)

    def events(self, name: Optional[str] = None) -> list[dict[str, Any]]:
        return [m for m in self.sent if name is None or m["event"] == name]


class ClosedTransport(RecordingTransport):
    async def send_json(self, data: dict[str, Any]) -> None:
        raise RuntimeError("Cannot call send once a close message has been sent")


@pytest.fixture
def registry() -> MemoryRoomRegistry:
    return MemoryRoomRegistry()


@pytest.fixture
def connections() -> ConnectionTable:
    return ConnectionTable()


@pytest.fixture
def router(connections: ConnectionTable) -> BroadcastRouter:
    return BroadcastRouter(connections)


@pytest.fixture
def manager(registry: MemoryRoomRegistry, connections: ConnectionTable, router: BroadcastRouter) -> SessionManager:
    return SessionManager(registry, connections, router)


@pytest.fixture
def connect(manager: SessionManager):
    """Open a session on the manager backed by an in-memory transport."""

    def _connect(connection_id: str, closed: bool = False) -> Session:
        transport = ClosedTransport() if closed else RecordingTransport()
        return manager.connect(connection_id, transport)

    return _connect
