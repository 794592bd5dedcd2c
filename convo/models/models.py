# convo/models/models.py
from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class RoomStatus(str, Enum):
    ACTIVE = "active"
    SUMMARIZING = "summarizing"
    CLOSED = "closed"


class Participant(BaseModel):
    connection_id: str
    display_name: str


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    author: str
    text: str
    timestamp: float


class Room(BaseModel):
    code: str
    created_at: float
    last_activity_at: float
    status: RoomStatus = RoomStatus.ACTIVE
    participants: List[Participant] = Field(default_factory=list)
    messages: List[Message] = Field(default_factory=list)

    def touch(self, now: float) -> None:
        self.last_activity_at = now


class Summary(BaseModel):
    overview: str = ""
    overview_available: bool = True
    key_points: List[str] = Field(default_factory=list)
    action_items: List[str] = Field(default_factory=list)
    message_count: int = 0


# ============================================================================
# HTTP RESPONSES
# ============================================================================

class CreateRoomResponse(BaseModel):
    roomCode: str


class RoomExistsResponse(BaseModel):
    exists: bool
