import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from logging_config import get_logger

logger = get_logger(__name__)


class SessionState(str, Enum):
    UNJOINED = "unjoined"
    JOINED = "joined"
    CLOSED = "closed"


@dataclass(eq=False)
class Session:
    """State of one connection. Only SessionManager changes these fields.

    `transport` is anything with an async `send_json(dict)`, normally a
    FastAPI WebSocket.
    """

    connection_id: str
    transport: Any
    display_name: Optional[str] = None
    room_id: Optional[str] = None
    state: SessionState = SessionState.UNJOINED

    @property
    def is_joined(self) -> bool:
        return self.state is SessionState.JOINED

    @property
    def is_closed(self) -> bool:
        return self.state is SessionState.CLOSED


class ConnectionTable:
    """Live sessions of this process, keyed by connection id."""

    def __init__(self):
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def add(self, session: Session):
        with self._lock:
            self._sessions[session.connection_id] = session
            logger.debug(f"Tracking connection {session.connection_id} ({len(self._sessions)} live)")

    def discard(self, connection_id: str):
        with self._lock:
            self._sessions.pop(connection_id, None)

    def get(self, connection_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(connection_id)

    def in_room(self, room_id: str) -> List[Session]:
        with self._lock:
            return [s for s in self._sessions.values() if s.is_joined and s.room_id == room_id]

    def __len__(self):
        with self._lock:
            return len(self._sessions)
