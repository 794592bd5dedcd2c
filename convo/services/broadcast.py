# convo/services/broadcast.py
from __future__ import annotations

import json
from typing import Optional, Protocol

import redis.asyncio as redis

from convo.core.logging import get_logger
from convo.services.connection_manager import ConnectionManager

logger = get_logger(__name__)

CHANNEL_PREFIX = "room:"


class BroadcastSink(Protocol):
    """Anything that can deliver a room event to the room's connected members."""

    async def publish(self, room_code: str, event: dict) -> None:
        ...


class RedisBroadcastSink:
    """
    Relays room events through Redis Pub/Sub.

    ``publish`` writes the event to the room's channel; ``listen`` reads the
    pattern ``room:*`` and hands every event to the local ConnectionManager,
    which does the actual WebSocket fan-out.

    Room state itself stays in this process; Redis only carries events.
    """

    def __init__(
        self,
        local: ConnectionManager,
        host: str = "localhost",
        port: int = 6379,
        access_key: str = "",
    ):
        self.local = local
        self.host = host
        self.port = port
        self.access_key = access_key
        self.client: Optional[redis.Redis] = None
        self.pubsub = None

    async def connect(self) -> None:
        """Establish async connection to Redis."""
        self.client = redis.from_url(
            f"rediss://:{self.access_key}@{self.host}:{self.port}",
            decode_responses=True,
        )
        await self.client.ping()
        logger.info("✓ Connected to Redis at %s:%s", self.host, self.port)

    async def publish(self, room_code: str, event: dict) -> None:
        payload = json.dumps({"room_code": room_code, "event": event})
        await self.client.publish(f"{CHANNEL_PREFIX}{room_code}", payload)
        logger.debug("📤 Published %s to Redis channel for room %s", event.get("type"), room_code)

    async def listen(self) -> None:
        """Forward every room event from Redis to local WebSocket connections."""
        self.pubsub = self.client.pubsub()
        await self.pubsub.psubscribe(f"{CHANNEL_PREFIX}*")
        logger.info("✓ Subscribed to Redis pattern '%s*'", CHANNEL_PREFIX)

        async for message in self.pubsub.listen():
            if message["type"] not in ("message", "pmessage"):
                continue
            try:
                data = json.loads(message["data"])
                room_code = data.get("room_code")
                if room_code:
                    await self.local.publish(room_code, data.get("event", {}))
                else:
                    logger.warning("Redis message without room_code - ignoring")
            except Exception as e:
                logger.error("Error processing Redis message: %s", e)

    async def close(self) -> None:
        if self.pubsub:
            await self.pubsub.punsubscribe()
            await self.pubsub.aclose()
        if self.client:
            await self.client.aclose()
        logger.info("Redis connection closed")
