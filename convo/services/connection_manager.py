# convo/services/connection_manager.py

from __future__ import annotations

import uuid
from typing import Dict, Set

from fastapi import WebSocket

from convo.core.logging import get_logger

logger = get_logger(__name__)

# ============================================================================
# WEBSOCKET CONNECTION MANAGER
# ============================================================================

class ConnectionManager:
    """
    Tracks WebSocket connections and which rooms each one listens to.

    This is the in-process Broadcast Sink: ``publish(room_code, event)``
    fans an event out to every connection subscribed to the room. Room
    membership for chat purposes (display names) lives on the Room itself;
    this class only knows about sockets.

    Data Structures:
        connections: Maps connection_id -> WebSocket
        rooms: Maps room_code -> Set of connection_ids subscribed to it
               Example: {"K3ZQ7A": {"c1", "c2"}}
        connection_rooms: Maps connection_id -> Set of room_codes
               Example: {"c1": {"K3ZQ7A"}}
    """

    def __init__(self) -> None:
        self.connections: Dict[str, WebSocket] = {}
        self.rooms: Dict[str, Set[str]] = {}
        self.connection_rooms: Dict[str, Set[str]] = {}

    async def connect(self, websocket: WebSocket) -> str:
        """
        Accept a new WebSocket connection.

        Returns:
            The connection identifier assigned to this socket.

        Note:
            The connection is not subscribed to any room until it joins one.
        """
        await websocket.accept()
        connection_id = uuid.uuid4().hex
        self.connections[connection_id] = websocket
        self.connection_rooms[connection_id] = set()
        logger.info("✓ Connection %s opened. Total: %d", connection_id, len(self.connections))
        return connection_id

    def disconnect(self, connection_id: str) -> Set[str]:
        """
        Forget a connection and all of its room subscriptions.

        Returns:
            The room codes the connection was subscribed to, so the caller
            can process a leave for each of them.
        """
        if connection_id not in self.connections:
            return set()

        joined = self.connection_rooms.pop(connection_id, set())
        for room_code in joined:
            self._discard(room_code, connection_id)
        del self.connections[connection_id]

        logger.info("✗ Connection %s closed. Total: %d", connection_id, len(self.connections))
        return joined

    def subscribe(self, connection_id: str, room_code: str) -> None:
        if connection_id not in self.connections:
            return  # Connection already closed
        self.rooms.setdefault(room_code, set()).add(connection_id)
        self.connection_rooms[connection_id].add(room_code)

    def unsubscribe(self, connection_id: str, room_code: str) -> None:
        if connection_id in self.connection_rooms:
            self.connection_rooms[connection_id].discard(room_code)
        self._discard(room_code, connection_id)

    def forget_room(self, room_code: str) -> None:
        """Drop every subscription to a room that no longer exists."""
        for connection_id in self.rooms.pop(room_code, set()):
            if connection_id in self.connection_rooms:
                self.connection_rooms[connection_id].discard(room_code)

    def _discard(self, room_code: str, connection_id: str) -> None:
        members = self.rooms.get(room_code)
        if members is None:
            return
        members.discard(connection_id)
        # Clean up empty rooms from memory
        if not members:
            del self.rooms[room_code]

    async def send(self, connection_id: str, event: dict) -> None:
        """Send an event to a single connection (errors, acknowledgements)."""
        websocket = self.connections.get(connection_id)
        if websocket is None:
            return
        try:
            await websocket.send_json(event)
        except Exception as e:
            logger.error("Send error to %s: %s", connection_id, e)

    async def publish(self, room_code: str, event: dict) -> None:
        """
        Broadcast an event to every connection subscribed to a room.

        Delivery is best effort: a failed send is logged and skipped, and the
        connection's own receive loop takes care of the cleanup.

        A ``room_closed`` event also drops the room's subscriptions once it
        has been delivered.
        """
        members = self.rooms.get(room_code)
        if not members:
            logger.debug("[routing] Skipped broadcast: room=%s has 0 subscribers", room_code)
        else:
            # Copy to avoid modification during iteration
            targets = list(members)
            logger.debug("📨 Broadcasting %s to room %s: %d clients", event.get("type"), room_code, len(targets))
            for connection_id in targets:
                await self.send(connection_id, event)

        if event.get("type") == "room_closed":
            self.forget_room(room_code)
