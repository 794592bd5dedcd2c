# convo/api/routes/metrics.py
from datetime import datetime, timezone

from fastapi import APIRouter, Request

router = APIRouter()

@router.get("/metrics")
async def get_metrics(request: Request):
    """
    Usage counters since process start.

    Only counts are exposed; no room codes, names or message text.
    """
    state = request.app.state.convo
    uptime_seconds = (datetime.now(timezone.utc) - state.app_start_time).total_seconds()
    coordinator = state.coordinator

    return {
        "uptime_hours": round(uptime_seconds / 3600, 2),
        "total_messages": coordinator.messages_sent,
        "summaries_delivered": coordinator.summaries_delivered,
        "rooms_pending_close": coordinator.pending_closures(),
        "rooms_reaped": state.reaper.total_reaped,
        "live_rooms": len(state.room_store),
        "concurrent_connections": len(state.connection_manager.connections),
        "limits": {
            "max_messages_per_room": coordinator.max_messages,
            "max_characters_per_message": coordinator.max_message_length,
            "room_inactivity_timeout_seconds": state.reaper.inactivity_timeout,
        },
    }
