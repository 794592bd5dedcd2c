# convo/api/websocket.py

from __future__ import annotations

import asyncio
import json
from typing import Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from convo.core.exceptions import ConvoError, RoomNotFound
from convo.core.logging import get_logger
from convo.core.state import AppState

logger = get_logger(__name__)

router = APIRouter()

# Summaries run outside the receive loop; keep references until they finish
_summary_tasks: Set[asyncio.Task] = set()


def error_event(code: str, message: str) -> dict:
    return {"type": "error", "code": code, "message": message}


# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for room events.

    Protocol:
    =========

    Client -> Server Actions:
    -------------------------
    Join Room:
        {"action": "join_room", "roomCode": "K3ZQ7A", "username": "alice"}
        Broadcast: {"type": "user_joined", "username": "alice"}

    Leave Room:
        {"action": "leave_room", "roomCode": "K3ZQ7A"}
        Broadcast: {"type": "user_left", "id": "<connection id>", "username": "alice"}

    Send Message:
        {"action": "send_message", "roomCode": "K3ZQ7A", "username": "alice", "message": "hi"}
        Broadcast: {"type": "receive_message", "username": "alice", "message": "hi", "timestamp": ...}

    Generate Summary:
        {"action": "generate_summary", "roomCode": "K3ZQ7A"}
        Broadcast: {"type": "summary_generating", "roomCode": "K3ZQ7A"}
                   {"type": "summary_generated", "roomCode": ..., "summary": ...,
                    "keyPoints": [...], "actionItems": [...], "messageCount": 12,
                    "summaryAvailable": true}
                   {"type": "room_closed", "roomCode": "K3ZQ7A", "reason": "summarized"}

    Error (to the requesting connection only):
        {"type": "error", "code": "room_not_found", "message": "..."}

    Lifecycle:
    ==========
    1. Client connects, gets a connection id
    2. Client joins a room and receives that room's events
    3. On disconnect, the connection leaves every room it joined
    """
    state: AppState = websocket.app.state.convo
    connections = state.connection_manager
    coordinator = state.coordinator

    connection_id = await connections.connect(websocket)

    async def summarize(room_code: str) -> None:
        try:
            await coordinator.request_summary(room_code)
        except ConvoError as e:
            await connections.send(connection_id, error_event(e.code, str(e)))
        except Exception as e:
            logger.error("Summary generation error: %s", e, exc_info=True)
            await connections.send(connection_id, error_event("summary_failed", "Failed to generate summary"))

    try:
        while True:
            data = await websocket.receive_text()

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await connections.send(connection_id, error_event("invalid_json", "Invalid JSON"))
                continue
            if not isinstance(message, dict):
                await connections.send(connection_id, error_event("invalid_json", "Expected a JSON object"))
                continue

            action = message.get("action")
            room_code = message.get("roomCode")
            logger.debug("Websocket input from %s: action=%s room=%s", connection_id, action, room_code)

            if action not in ("join_room", "leave_room", "send_message", "generate_summary"):
                await connections.send(connection_id, error_event("unknown_action", f"Unknown action: {action}"))
                continue
            if not isinstance(room_code, str) or not room_code:
                await connections.send(connection_id, error_event("invalid_request", "roomCode is required"))
                continue

            try:
                if action == "join_room":
                    username = message.get("username")
                    if not isinstance(username, str) or not username.strip():
                        await connections.send(connection_id, error_event("invalid_request", "username is required"))
                        continue
                    if not coordinator.room_exists(room_code):
                        raise RoomNotFound(room_code)
                    # Subscribe first so the joiner sees its own user_joined event
                    connections.subscribe(connection_id, room_code)
                    await coordinator.join(room_code, connection_id, username.strip())

                elif action == "leave_room":
                    connections.unsubscribe(connection_id, room_code)
                    await coordinator.leave(room_code, connection_id)

                elif action == "send_message":
                    username = message.get("username")
                    if not isinstance(username, str) or not username.strip():
                        username = "Anonymous"
                    await coordinator.send_message(room_code, username.strip(), message.get("message"))

                elif action == "generate_summary":
                    task = asyncio.create_task(summarize(room_code))
                    _summary_tasks.add(task)
                    task.add_done_callback(_summary_tasks.discard)

            except ConvoError as e:
                await connections.send(connection_id, error_event(e.code, str(e)))

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error("WebSocket error: %s", e)
    finally:
        for room_code in connections.disconnect(connection_id):
            await coordinator.leave(room_code, connection_id)
