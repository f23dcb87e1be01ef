from fastapi import APIRouter, HTTPException, Request
from schemas.rooms import RoomDetailsResponse, RoomSummary
from logging_config import get_logger

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])


@rooms_router.get("", response_model=list[RoomSummary])
async def list_rooms(request: Request):
    registry = request.app.state.registry
    rooms = registry.rooms()
    logger.debug(f"Listing {len(rooms)} active rooms")
    return [RoomSummary(room_id=room.room_id, online_users_count=len(room.members)) for room in rooms]


@rooms_router.get("/{room_id}", response_model=RoomDetailsResponse)
async def get_room_details(room_id: str, request: Request):
    """
    Get the members currently joined to a room.

    Rooms exist only while someone is in them, so an unknown or emptied room
    is a 404.
    """
    registry = request.app.state.registry
    members = registry.members(room_id)
    if not members:
        logger.info(f"Room details failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")

    logger.debug(f"Room details retrieved for {room_id}: {len(members)} users online")
    return RoomDetailsResponse(
        room_id=room_id,
        members=sorted(members),
        online_users_count=len(members),
    )
