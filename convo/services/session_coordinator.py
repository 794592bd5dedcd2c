# convo/services/session_coordinator.py
"""
Session Coordinator: every user-driven operation on a room.

Room state machine:

    ACTIVE ──request_summary──▶ SUMMARIZING ──grace delay──▶ CLOSED (removed)
       ▲                            │
       └──────gateway failure───────┘

All checks and mutations of a room happen before the first ``await`` of an
operation, so on a single event loop two operations on the same room can
never interleave mid-mutation. Broadcasts happen afterwards and are best
effort.
"""
from __future__ import annotations

import asyncio
from typing import Dict, Optional, Set, Tuple

from convo.core.clock import Clock, LoopScheduler, Scheduler, SystemClock, TimerHandle
from convo.core.exceptions import AlreadySummarizing, EmptyRoom, GatewayError, RoomFull
from convo.core.logging import get_logger
from convo.models.models import Message, Participant, Room, RoomStatus, Summary
from convo.services.broadcast import BroadcastSink
from convo.services.message_validator import DEFAULT_MAX_MESSAGE_LENGTH, validate_message
from convo.services.room_store import RoomStore
from convo.services.summarization_gateway import SummarizationGateway

logger = get_logger(__name__)

DEFAULT_MAX_MESSAGES = 1000
DEFAULT_GRACE_DELAY = 2.0


class SessionCoordinator:
    """Join / leave / send / summarize against the Room Store."""

    def __init__(
        self,
        store: RoomStore,
        sink: BroadcastSink,
        gateway: SummarizationGateway,
        clock: Optional[Clock] = None,
        scheduler: Optional[Scheduler] = None,
        max_messages: int = DEFAULT_MAX_MESSAGES,
        max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH,
        grace_delay: float = DEFAULT_GRACE_DELAY,
    ) -> None:
        self.store = store
        self.sink = sink
        self.gateway = gateway
        self.clock = clock or SystemClock()
        self.scheduler = scheduler or LoopScheduler()
        self.max_messages = max_messages
        self.max_message_length = max_message_length
        self.grace_delay = grace_delay

        self.messages_sent = 0
        self.summaries_delivered = 0

        # room code -> (room awaiting teardown, its timer)
        self._close_timers: Dict[str, Tuple[Room, TimerHandle]] = {}
        self._background: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    async def join(self, room_code: str, connection_id: str, display_name: str) -> Participant:
        """
        Add a participant and announce it to the room.

        Raises:
            RoomNotFound: room absent
        """
        room = self.store.get(room_code)
        participant = Participant(connection_id=connection_id, display_name=display_name)
        room.participants.append(participant)
        room.touch(self.clock.now())
        logger.info("→ %s joined %s (%d participants)", display_name, room_code, len(room.participants))

        await self._publish(room_code, {"type": "user_joined", "username": display_name})
        return participant

    async def leave(self, room_code: str, connection_id: str) -> Optional[Participant]:
        """
        Remove one participant with this connection id. No-op when the room
        is gone or the connection never joined it.
        """
        if not self.store.exists(room_code):
            return None
        room = self.store.get(room_code)

        for index, participant in enumerate(room.participants):
            if participant.connection_id == connection_id:
                break
        else:
            return None

        del room.participants[index]
        room.touch(self.clock.now())
        logger.info("← %s left %s (%d participants)", participant.display_name, room_code, len(room.participants))

        await self._publish(
            room_code,
            {"type": "user_left", "id": connection_id, "username": participant.display_name},
        )
        return participant

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def send_message(self, room_code: str, display_name: str, raw_text) -> Message:
        """
        Store a message and broadcast it to everyone in the room, sender included.

        Raises:
            RoomNotFound: room absent
            AlreadySummarizing: room no longer accepts messages
            InvalidMessage: validator rejected the text
            RoomFull: message limit already reached
        """
        room = self.store.get(room_code)
        if room.status is not RoomStatus.ACTIVE:
            raise AlreadySummarizing(room_code)

        text = validate_message(raw_text, self.max_message_length)

        if len(room.messages) >= self.max_messages:
            raise RoomFull(room_code, self.max_messages)

        now = self.clock.now()
        message = Message(author=display_name, text=text, timestamp=now)
        room.messages.append(message)
        room.touch(now)
        self.messages_sent += 1

        await self._publish(
            room_code,
            {
                "type": "receive_message",
                "username": display_name,
                "message": text,
                "timestamp": now,
            },
        )
        return message

    # ------------------------------------------------------------------
    # Summaries
    # ------------------------------------------------------------------

    async def request_summary(self, room_code: str) -> Summary:
        """
        Summarize the room, deliver the result, then tear the room down.

        On success the transcript is dropped immediately and the room is
        removed ``grace_delay`` seconds later. On failure the room goes back
        to ACTIVE so the user can retry.

        Raises:
            RoomNotFound: room absent
            AlreadySummarizing: a summary is already pending or delivered
            EmptyRoom: nothing to summarize
            GatewayError: the summarizer failed (room state restored)
        """
        room = self.store.get(room_code)
        if room.status is not RoomStatus.ACTIVE:
            raise AlreadySummarizing(room_code)
        if not room.messages:
            raise EmptyRoom(room_code)

        room.status = RoomStatus.SUMMARIZING
        room.touch(self.clock.now())
        transcript = list(room.messages)
        logger.info("Summarizing room %s (%d messages)", room_code, len(transcript))

        await self._publish(room_code, {"type": "summary_generating", "roomCode": room_code})

        try:
            summary = await self.gateway.summarize(transcript)
        except asyncio.CancelledError:
            self._restore(room)
            raise
        except GatewayError:
            self._restore(room)
            raise
        except Exception as exc:
            self._restore(room)
            raise GatewayError("Failed to generate summary. Please try again.") from exc

        room.messages.clear()
        self.summaries_delivered += 1

        await self._publish(
            room_code,
            {
                "type": "summary_generated",
                "roomCode": room_code,
                "summary": summary.overview,
                "summaryAvailable": summary.overview_available,
                "keyPoints": summary.key_points,
                "actionItems": summary.action_items,
                "messageCount": summary.message_count,
            },
        )

        if self.store.rooms.get(room_code) is room:
            handle = self.scheduler.call_later(self.grace_delay, self._close_room, room)
            self._close_timers[room_code] = (room, handle)
        else:
            logger.info("Room %s expired while its summary was generated", room_code)
        return summary

    def _restore(self, room: Room) -> None:
        if room.status is RoomStatus.SUMMARIZING:
            room.status = RoomStatus.ACTIVE
        logger.warning("Summary failed for room %s, room stays open", room.code)

    def _close_room(self, room: Room) -> None:
        entry = self._close_timers.get(room.code)
        if entry is not None and entry[0] is room:
            del self._close_timers[room.code]

        room.status = RoomStatus.CLOSED
        if not self.store.remove_if(room.code, room):
            # Reaped before the timer fired
            return
        logger.info("Room %s cleaned up and deleted", room.code)
        self._spawn(self._publish(room.code, {"type": "room_closed", "roomCode": room.code, "reason": "summarized"}))

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def room_exists(self, room_code: str) -> bool:
        return self.store.exists(room_code)

    def pending_closures(self) -> int:
        return len(self._close_timers)

    async def _publish(self, room_code: str, event: dict) -> None:
        try:
            await self.sink.publish(room_code, event)
        except Exception as e:
            logger.warning("Broadcast of %s to room %s failed: %s", event.get("type"), room_code, e)

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def shutdown(self) -> None:
        """Cancel pending teardown timers and wait for in-flight broadcasts."""
        for _, handle in self._close_timers.values():
            handle.cancel()
        self._close_timers.clear()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
