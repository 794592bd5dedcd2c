# convo/api/routes/health.py

from fastapi import APIRouter, Request

router = APIRouter()

@router.get("/health")
async def health(request: Request):
    """
    Health check endpoint.

    Returns:
        dict: Status, open connection count, live room count
    """
    state = request.app.state.convo
    return {
        "status": "healthy",
        "connections": len(state.connection_manager.connections),
        "rooms": len(state.room_store),
    }
