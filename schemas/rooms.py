from pydantic import BaseModel, ConfigDict
from typing import Any, Optional


class ClientEvent(BaseModel):
    event: str
    data: Any = None

class ServerEvent(BaseModel):
    event: str
    data: Any = None

class JoinRoomPayload(BaseModel):
    username: str
    roomId: str

class SendMessagePayload(BaseModel):
    # extra fields are relayed untouched
    model_config = ConfigDict(extra="allow")

    roomId: str
    message: str
    author: str

class ErrorPayload(BaseModel):
    code: str
    detail: Optional[str] = None

class RoomSummary(BaseModel):
    room_id: str
    online_users_count: int

class RoomDetailsResponse(BaseModel):
    room_id: str
    members: list[str]
    online_users_count: int
