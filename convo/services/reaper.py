# convo/services/reaper.py

from __future__ import annotations

import asyncio
from typing import List, Optional

from convo.core.clock import Clock, SystemClock
from convo.core.logging import get_logger
from convo.services.broadcast import BroadcastSink
from convo.services.room_store import RoomStore

logger = get_logger(__name__)

DEFAULT_INACTIVITY_TIMEOUT = 30 * 60.0
DEFAULT_SCAN_INTERVAL = 5 * 60.0


class ActivityReaper:
    """
    Background task that evicts rooms nobody has touched for a while.

    Each tick removes every room whose last activity is older than
    ``inactivity_timeout`` seconds. A sweep runs without awaiting, so it
    never interleaves with a half-finished room operation.
    """

    def __init__(
        self,
        store: RoomStore,
        clock: Optional[Clock] = None,
        inactivity_timeout: float = DEFAULT_INACTIVITY_TIMEOUT,
        interval: float = DEFAULT_SCAN_INTERVAL,
        sink: Optional[BroadcastSink] = None,
    ) -> None:
        self.store = store
        self.clock = clock or SystemClock()
        self.inactivity_timeout = inactivity_timeout
        self.interval = interval
        self.sink = sink
        self.total_reaped = 0
        self._task: Optional[asyncio.Task] = None

    def sweep(self) -> List[str]:
        """Remove expired rooms. Returns the codes that were removed."""
        now = self.clock.now()
        expired = [
            room.code
            for room in self.store.list_rooms()
            if now - room.last_activity_at > self.inactivity_timeout
        ]
        for code in expired:
            logger.info("Auto-expiring inactive room: %s", code)
            self.store.remove(code)

        if expired:
            self.total_reaped += len(expired)
            logger.info("Expired %d inactive room(s)", len(expired))
        return expired

    async def tick(self) -> List[str]:
        expired = self.sweep()
        if self.sink is not None:
            for code in expired:
                try:
                    await self.sink.publish(code, {"type": "room_closed", "roomCode": code, "reason": "expired"})
                except Exception as e:
                    logger.warning("Could not announce expiry of room %s: %s", code, e)
        return expired

    async def run(self) -> None:
        logger.info(
            "Reaper running: timeout=%ss interval=%ss", self.inactivity_timeout, self.interval
        )
        while True:
            await asyncio.sleep(self.interval)
            await self.tick()

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
