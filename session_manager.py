from typing import Any, Union

from pydantic import ValidationError

from broadcast import BroadcastRouter
from logging_config import get_logger
from schemas.rooms import ErrorPayload, JoinRoomPayload, SendMessagePayload
from sessions import ConnectionTable, Session, SessionState

logger = get_logger(__name__)

# client -> server
JOIN_ROOM = "joinRoom"
SEND_MESSAGE = "send_message"
LEAVE_ROOM = "leaveRoom"

# server -> client
JOIN_SUCCESS = "join_success"
LEAVE_SUCCESS = "leave_success"
USER_JOINED = "user_joined"
USER_LEFT = "user_left"
RECEIVE_MESSAGE = "receive_message"
ERROR = "error"

# error codes carried by the `error` event
VALIDATION_FAILED = "validation_failed"
ALREADY_JOINED = "already_joined"
NAME_TAKEN = "name_taken"
NOT_JOINED = "not_joined"
UNKNOWN_EVENT = "unknown_event"
INVALID_PAYLOAD = "invalid_payload"


class SessionManager:
    """Drives each connection through unjoined -> joined -> closed.

    This is the only component that mutates the room registry. Protocol
    misuse (double join, sending or leaving before joining, unknown events,
    malformed payloads) is answered with an `error` event to the offending
    connection and changes nothing.
    """

    def __init__(self, registry, connections: ConnectionTable, router: BroadcastRouter):
        self.registry = registry
        self.connections = connections
        self.router = router
        self._handlers = {
            JOIN_ROOM: self._on_join_room,
            SEND_MESSAGE: self._on_send_message,
            LEAVE_ROOM: self._on_leave_room,
        }

    def connect(self, connection_id: str, transport: Any) -> Session:
        session = Session(connection_id=connection_id, transport=transport)
        self.connections.add(session)
        logger.info(f"Connection {connection_id} opened")
        return session

    async def dispatch(self, session: Session, event: str, data: Any = None):
        if session.is_closed:
            logger.debug(f"Ignoring {event} for closed connection {session.connection_id}")
            return
        handler = self._handlers.get(event)
        if handler is None:
            logger.warning(f"Unknown event {event!r} from connection {session.connection_id}")
            await self.reject(session, UNKNOWN_EVENT, f"Unknown event: {event}")
            return
        try:
            await handler(session, data)
        except ValidationError as e:
            logger.warning(f"Invalid {event} payload from connection {session.connection_id}: {e.error_count()} errors")
            await self.reject(session, INVALID_PAYLOAD, f"Invalid payload for {event}")

    async def _on_join_room(self, session: Session, data: Any):
        payload = JoinRoomPayload.model_validate(data)
        await self.join_room(session, payload.username, payload.roomId)

    async def _on_send_message(self, session: Session, data: Any):
        await self.send_message(session, SendMessagePayload.model_validate(data))

    async def _on_leave_room(self, session: Session, data: Any):
        await self.leave_room(session)

    async def join_room(self, session: Session, username: str, room_id: str) -> bool:
        username = (username or "").strip()
        room_id = (room_id or "").strip()
        if not username or not room_id:
            logger.info(f"Join rejected for connection {session.connection_id}: empty username or room id")
            await self.reject(session, VALIDATION_FAILED, "Username and Room ID cannot be empty.")
            return False
        if session.state is not SessionState.UNJOINED:
            logger.info(f"Join rejected for connection {session.connection_id}: already in room {session.room_id}")
            await self.reject(session, ALREADY_JOINED, f"Already joined room {session.room_id}")
            return False
        if not self.registry.add_member(room_id, username):
            logger.info(f"Join rejected for connection {session.connection_id}: {username} already in room {room_id}")
            await self.reject(session, NAME_TAKEN, f"Display name '{username}' is already taken. Please choose a different name.")
            return False

        session.display_name = username
        session.room_id = room_id
        session.state = SessionState.JOINED
        logger.info(f"User {username} ({session.connection_id}) joined room {room_id}")

        await self.router.broadcast(room_id, USER_JOINED, username, exclude=session.connection_id)
        await self.router.send(session, JOIN_SUCCESS)
        return True

    async def send_message(self, session: Session, payload: Union[SendMessagePayload, dict]) -> int:
        if not session.is_joined:
            await self.reject(session, NOT_JOINED, "Join a room before sending messages")
            return 0
        if isinstance(payload, dict):
            payload = SendMessagePayload.model_validate(payload)
        # the payload is relayed as sent, author and room are not checked against the session
        logger.debug(f"Message from connection {session.connection_id} to room {payload.roomId}")
        return await self.router.broadcast(payload.roomId, RECEIVE_MESSAGE, payload.model_dump())

    async def leave_room(self, session: Session) -> bool:
        if not session.is_joined:
            await self.reject(session, NOT_JOINED, "Not in a room")
            return False
        username, room_id = session.display_name, session.room_id
        self.registry.remove_member(room_id, username)
        session.display_name = None
        session.room_id = None
        session.state = SessionState.UNJOINED
        logger.info(f"User {username} ({session.connection_id}) left room {room_id}")

        await self.router.broadcast(room_id, USER_LEFT, username, exclude=session.connection_id)
        await self.router.send(session, LEAVE_SUCCESS)
        return True

    async def disconnect(self, session: Session):
        if session.is_closed:
            return
        was_joined = session.is_joined
        username, room_id = session.display_name, session.room_id
        if was_joined:
            self.registry.remove_member(room_id, username)
        session.state = SessionState.CLOSED
        self.connections.discard(session.connection_id)
        logger.info(f"Connection {session.connection_id} closed")

        if was_joined:
            logger.info(f"User {username} left room {room_id}")
            await self.router.broadcast(room_id, USER_LEFT, username, exclude=session.connection_id)

    async def reject(self, session: Session, code: str, detail: str):
        await self.router.send(session, ERROR, ErrorPayload(code=code, detail=detail).model_dump())
