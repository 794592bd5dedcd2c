# convo/api/routes/rooms.py

from fastapi import APIRouter, Request

from convo.models.models import CreateRoomResponse, RoomExistsResponse

router = APIRouter(prefix="/api", tags=["rooms"])

# ============================================================================
# ROOM ENDPOINTS
# ============================================================================

@router.post("/create-room", response_model=CreateRoomResponse)
async def create_room(request: Request):
    """
    Create a new chat room.

    The room starts empty; users join it over the WebSocket with the
    returned code.

    Returns:
        CreateRoomResponse: {"roomCode": "K3ZQ7A"}
    """
    code = request.app.state.convo.room_store.create()
    return CreateRoomResponse(roomCode=code)


@router.get("/room-exists/{room_code}", response_model=RoomExistsResponse)
async def room_exists(room_code: str, request: Request):
    """
    Check whether a room is still live.

    Rooms disappear after a summary has been delivered or after the
    inactivity timeout, so clients check before joining.
    """
    return RoomExistsResponse(exists=request.app.state.convo.room_store.exists(room_code))
