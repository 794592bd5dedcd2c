# convo/core/state.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from convo.core.clock import Clock, LoopScheduler, Scheduler, SystemClock
from convo.core.config import Settings
from convo.services.broadcast import BroadcastSink, RedisBroadcastSink
from convo.services.connection_manager import ConnectionManager
from convo.services.reaper import ActivityReaper
from convo.services.room_store import RoomStore
from convo.services.session_coordinator import SessionCoordinator
from convo.services.summarization_gateway import SummarizationGateway


class AppState:
    """
    Everything one running server owns, wired together once at startup.

    Attached to ``app.state.convo``; routes and the WebSocket handler reach
    it through the request instead of module globals.
    """

    def __init__(
        self,
        settings: Settings,
        gateway: SummarizationGateway,
        clock: Optional[Clock] = None,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        self.settings = settings
        self.clock = clock or SystemClock()
        self.app_start_time = datetime.now(timezone.utc)

        self.room_store = RoomStore(clock=self.clock)
        self.connection_manager = ConnectionManager()
        self.redis_sink: Optional[RedisBroadcastSink] = None

        sink: BroadcastSink = self.connection_manager
        if settings.BROADCAST_BACKEND == "redis":
            self.redis_sink = RedisBroadcastSink(
                self.connection_manager,
                host=settings.REDIS_HOST,
                port=settings.REDIS_PORT,
                access_key=settings.REDIS_ACCESS_KEY,
            )
            sink = self.redis_sink

        self.coordinator = SessionCoordinator(
            store=self.room_store,
            sink=sink,
            gateway=gateway,
            clock=self.clock,
            scheduler=scheduler or LoopScheduler(),
            max_messages=settings.MAX_MESSAGES_PER_ROOM,
            max_message_length=settings.MAX_CHARACTERS_PER_MESSAGE,
            grace_delay=settings.SUMMARY_GRACE_SECONDS,
        )
        self.reaper = ActivityReaper(
            store=self.room_store,
            clock=self.clock,
            inactivity_timeout=settings.ROOM_INACTIVITY_TIMEOUT_SECONDS,
            interval=settings.REAPER_INTERVAL_SECONDS,
            sink=sink,
        )
