import asyncio
from typing import Any, Optional

from logging_config import get_logger
from schemas.rooms import ServerEvent
from sessions import ConnectionTable, Session

logger = get_logger(__name__)


class BroadcastRouter:
    """Fans events out to the connections joined to a room.

    Delivery is fire-and-forget: a recipient that fails (usually one that
    closed a moment ago) is logged and skipped.
    """

    def __init__(self, connections: ConnectionTable):
        self.connections = connections

    async def send(self, session: Session, event: str, payload: Any = None) -> bool:
        message = ServerEvent(event=event, data=payload).model_dump()
        try:
            await session.transport.send_json(message)
            return True
        except Exception as e:
            logger.warning(f"Error sending {event} to connection {session.connection_id}: {e}")
            return False

    async def broadcast(self, room_id: str, event: str, payload: Any = None, exclude: Optional[str] = None) -> int:
        recipients = [s for s in self.connections.in_room(room_id) if s.connection_id != exclude]
        if not recipients:
            logger.debug(f"No recipients for {event} in room {room_id}")
            return 0

        message = ServerEvent(event=event, data=payload).model_dump()
        results = await asyncio.gather(
            *(s.transport.send_json(message) for s in recipients),
            return_exceptions=True,
        )
        delivered = 0
        for session, result in zip(recipients, results):
            if isinstance(result, BaseException):
                logger.warning(f"Error sending {event} to connection {session.connection_id} in room {room_id}: {result}")
            else:
                delivered += 1
        logger.debug(f"Broadcasted {event} to {delivered}/{len(recipients)} connections in room {room_id}")
        return delivered
