# convo/api/routes/root.py

from fastapi import APIRouter

router = APIRouter()


@router.get("/")
async def root():
    """
    Root endpoint - API information.
    """
    return {
        "message": "Convo - ephemeral two-party chat with AI summaries",
        "version": "1.0",
        "features": ["ephemeral_rooms", "ai_summary", "delete_after_summary", "inactivity_expiry"],
        "endpoints": {
            "websocket": "/ws",
            "create_room": "/api/create-room",
            "room_exists": "/api/room-exists/{room_code}",
            "health": "/health",
            "metrics": "/metrics",
        },
    }
