"""Unit tests for convo.services.session_coordinator."""

import asyncio

import pytest

from convo.core.exceptions import (
    AlreadySummarizing,
    CapacityExceeded,
    EmptyRoom,
    GatewayError,
    InvalidMessage,
    RoomFull,
    RoomNotFound,
)
from convo.models.models import RoomStatus
from convo.services.message_validator import RejectionReason
from convo.services.reaper import ActivityReaper

from conftest import VALID_REPLY


class TestJoinAndLeave:
    def test_join_adds_participant_and_broadcasts(self, coordinator, store, sink, clock):
        code = store.create()
        clock.advance(5)

        participant = asyncio.run(coordinator.join(code, "c1", "Alice"))

        room = store.get(code)
        assert participant.display_name == "Alice"
        assert [p.connection_id for p in room.participants] == ["c1"]
        assert room.last_activity_at == clock.now()
        assert sink.events == [(code, {"type": "user_joined", "username": "Alice"})]

    def test_join_missing_room(self, coordinator, sink):
        with pytest.raises(RoomNotFound):
            asyncio.run(coordinator.join("NOPE00", "c1", "Alice"))
        assert sink.events == []

    def test_duplicate_display_names_allowed(self, coordinator, store):
        code = store.create()

        async def scenario():
            await coordinator.join(code, "c1", "Sam")
            await coordinator.join(code, "c2", "Sam")

        asyncio.run(scenario())
        assert len(store.get(code).participants) == 2

    def test_leave_removes_one_participant(self, coordinator, store, sink, clock):
        code = store.create()

        async def scenario():
            await coordinator.join(code, "c1", "Alice")
            await coordinator.join(code, "c1", "Alice again")
            clock.advance(30)
            return await coordinator.leave(code, "c1")

        left = asyncio.run(scenario())

        room = store.get(code)
        assert left.display_name == "Alice"
        assert [p.display_name for p in room.participants] == ["Alice again"]
        assert room.last_activity_at == clock.now()
        assert sink.events[-1] == (code, {"type": "user_left", "id": "c1", "username": "Alice"})

    def test_leave_missing_room_is_noop(self, coordinator, sink):
        assert asyncio.run(coordinator.leave("NOPE00", "c1")) is None
        assert sink.events == []

    def test_leave_after_reap_is_noop(self, coordinator, store, clock, sink):
        code = store.create()
        asyncio.run(coordinator.join(code, "c1", "Alice"))
        clock.advance(3600)
        ActivityReaper(store, clock=clock).sweep()

        assert asyncio.run(coordinator.leave(code, "c1")) is None
        assert sink.types() == ["user_joined"]

    def test_leave_unknown_connection_is_noop(self, coordinator, store, sink):
        code = store.create()
        assert asyncio.run(coordinator.leave(code, "ghost")) is None
        assert sink.events == []


class TestSendMessage:
    def test_two_party_conversation(self, coordinator, store, sink):
        """Both participants see both messages, in order."""
        code = store.create()

        async def scenario():
            await coordinator.join(code, "a", "Alice")
            await coordinator.join(code, "b", "Bob")
            await coordinator.send_message(code, "Alice", "hi")
            await coordinator.send_message(code, "Bob", "hello")

        asyncio.run(scenario())

        delivered = [e["message"] for c, e in sink.events if e["type"] == "receive_message"]
        assert delivered == ["hi", "hello"]
        assert [m.text for m in store.get(code).messages] == ["hi", "hello"]
        assert [m.author for m in store.get(code).messages] == ["Alice", "Bob"]

    @pytest.mark.parametrize("raw", ["x", "  padded  ", "x" * 50, "\tmulti\nline\n"])
    def test_stores_trimmed_text(self, coordinator, store, raw):
        code = store.create()
        message = asyncio.run(coordinator.send_message(code, "Alice", raw))
        assert message.text == raw.strip()
        assert store.get(code).messages == [message]

    def test_updates_activity(self, coordinator, store, clock):
        code = store.create()
        clock.advance(100)
        asyncio.run(coordinator.send_message(code, "Alice", "hi"))
        assert store.get(code).last_activity_at == clock.now()

    def test_missing_room(self, coordinator):
        with pytest.raises(RoomNotFound):
            asyncio.run(coordinator.send_message("NOPE00", "Alice", "hi"))

    def test_too_long_message_rejected(self, coordinator, store, sink):
        code = store.create()
        with pytest.raises(InvalidMessage) as exc_info:
            asyncio.run(coordinator.send_message(code, "Alice", "x" * 51))
        assert exc_info.value.reason is RejectionReason.TOO_LONG
        assert store.get(code).messages == []
        assert sink.events == []

    def test_room_full_after_max_messages(self, coordinator, store):
        code = store.create()

        async def scenario():
            for i in range(5):
                await coordinator.send_message(code, "Alice", f"message {i}")
            await coordinator.send_message(code, "Alice", "one too many")

        with pytest.raises(RoomFull) as exc_info:
            asyncio.run(scenario())
        assert isinstance(exc_info.value, CapacityExceeded)
        assert len(store.get(code).messages) == 5
        assert coordinator.messages_sent == 5

    def test_rejected_while_summarizing(self, coordinator, store):
        code = store.create()
        asyncio.run(coordinator.send_message(code, "Alice", "hi"))
        store.get(code).status = RoomStatus.SUMMARIZING

        with pytest.raises(AlreadySummarizing):
            asyncio.run(coordinator.send_message(code, "Bob", "late"))
        assert len(store.get(code).messages) == 1


class TestRequestSummary:
    def test_empty_room_never_calls_gateway(self, coordinator, store, llm):
        code = store.create()
        with pytest.raises(EmptyRoom):
            asyncio.run(coordinator.request_summary(code))
        assert llm.calls == 0
        assert store.get(code).status is RoomStatus.ACTIVE

    def test_missing_room(self, coordinator):
        with pytest.raises(RoomNotFound):
            asyncio.run(coordinator.request_summary("NOPE00"))

    def test_successful_flow_closes_after_grace(self, coordinator, store, sink, llm, scheduler):
        llm.replies = [VALID_REPLY]
        code = store.create()

        async def scenario():
            await coordinator.join(code, "a", "Alice")
            await coordinator.send_message(code, "Alice", "hi")
            await coordinator.send_message(code, "Alice", "see you tomorrow")
            summary = await coordinator.request_summary(code)

            # Transcript is dropped as soon as the summary is out
            assert store.exists(code)
            assert store.get(code).messages == []
            assert store.get(code).status is RoomStatus.SUMMARIZING

            scheduler.advance(1.5)
            assert store.exists(code)

            scheduler.advance(0.5)
            assert not store.exists(code)
            await asyncio.sleep(0)
            return summary

        summary = asyncio.run(scenario())

        assert summary.overview == "Alice and Bob said hello."
        assert summary.key_points == ["Greetings exchanged"]
        assert summary.action_items == ["Meet tomorrow"]
        assert summary.message_count == 2
        assert sink.types(code) == [
            "user_joined",
            "receive_message",
            "receive_message",
            "summary_generating",
            "summary_generated",
            "room_closed",
        ]
        generated = [e for c, e in sink.events if e["type"] == "summary_generated"][0]
        assert generated["messageCount"] == 2
        assert generated["keyPoints"] == ["Greetings exchanged"]
        assert sink.events[-1][1]["reason"] == "summarized"
        assert coordinator.summaries_delivered == 1
        assert coordinator.pending_closures() == 0

    def test_second_summary_during_grace_rejected(self, coordinator, store, llm):
        code = store.create()

        async def scenario():
            await coordinator.send_message(code, "Alice", "hi")
            await coordinator.request_summary(code)
            await coordinator.request_summary(code)

        with pytest.raises(AlreadySummarizing):
            asyncio.run(scenario())
        assert llm.calls == 1

    def test_concurrent_requests_only_one_reaches_gateway(self, coordinator, store, llm):
        code = store.create()

        async def scenario():
            llm.gate = asyncio.Event()
            await coordinator.send_message(code, "Alice", "hi")
            first = asyncio.create_task(coordinator.request_summary(code))
            second = asyncio.create_task(coordinator.request_summary(code))
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            llm.gate.set()
            return await asyncio.gather(first, second, return_exceptions=True)

        results = asyncio.run(scenario())

        assert llm.calls == 1
        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], AlreadySummarizing)

    def test_messages_rejected_while_pending_and_accepted_after_failure(self, coordinator, store, llm):
        code = store.create()

        async def scenario():
            llm.gate = asyncio.Event()
            llm.replies = [RuntimeError("quota exceeded")]
            await coordinator.send_message(code, "Alice", "hi")
            pending = asyncio.create_task(coordinator.request_summary(code))
            await asyncio.sleep(0)

            with pytest.raises(AlreadySummarizing):
                await coordinator.send_message(code, "Bob", "late")

            llm.gate.set()
            with pytest.raises(GatewayError):
                await pending

            await coordinator.send_message(code, "Bob", "after failure")

        asyncio.run(scenario())
        assert [m.text for m in store.get(code).messages] == ["hi", "after failure"]

    def test_malformed_reply_keeps_room_active_and_retry_works(self, coordinator, store, llm, sink):
        llm.replies = ["I'm sorry, I can't produce JSON today.", VALID_REPLY]
        code = store.create()

        async def scenario():
            await coordinator.send_message(code, "Alice", "hi")
            with pytest.raises(GatewayError):
                await coordinator.request_summary(code)

            room = store.get(code)
            assert room.status is RoomStatus.ACTIVE
            assert len(room.messages) == 1

            return await coordinator.request_summary(code)

        summary = asyncio.run(scenario())

        assert summary.overview == "Alice and Bob said hello."
        assert llm.calls == 2
        assert sink.types(code).count("summary_generated") == 1
        assert "error" not in sink.types(code)

    def test_grace_timer_noop_after_reap(self, coordinator, store, scheduler, clock, sink):
        code = store.create()

        async def scenario():
            await coordinator.send_message(code, "Alice", "hi")
            await coordinator.request_summary(code)
            clock.advance(3600)
            ActivityReaper(store, clock=clock).sweep()
            scheduler.advance(2)
            await asyncio.sleep(0)

        asyncio.run(scenario())

        assert not store.exists(code)
        assert "room_closed" not in sink.types(code)
        assert coordinator.pending_closures() == 0

    def test_grace_timer_spares_new_room_with_same_code(self, sink, llm, clock, scheduler):
        from convo.services.room_store import RoomStore
        from convo.services.session_coordinator import SessionCoordinator
        from convo.services.summarization_gateway import SummarizationGateway

        store = RoomStore(clock=clock, code_factory=lambda: "SAME00")
        coordinator = SessionCoordinator(
            store, sink, SummarizationGateway(llm), clock=clock, scheduler=scheduler
        )

        async def scenario():
            code = store.create()
            await coordinator.send_message(code, "Alice", "hi")
            await coordinator.request_summary(code)
            store.remove(code)
            store.create()
            scheduler.advance(2)
            return code

        code = asyncio.run(scenario())
        assert store.exists(code)
        assert store.get(code).status is RoomStatus.ACTIVE

    def test_shutdown_cancels_pending_teardown(self, coordinator, store, scheduler):
        code = store.create()

        async def scenario():
            await coordinator.send_message(code, "Alice", "hi")
            await coordinator.request_summary(code)
            await coordinator.shutdown()
            scheduler.advance(5)

        asyncio.run(scenario())
        assert store.exists(code)
        assert all(t.cancelled for t in scheduler.timers)


class TestBestEffortBroadcast:
    def test_sink_failure_does_not_fail_send(self, store, llm, clock, scheduler):
        from convo.services.session_coordinator import SessionCoordinator
        from convo.services.summarization_gateway import SummarizationGateway

        class BrokenSink:
            async def publish(self, room_code, event):
                raise ConnectionError("socket gone")

        coordinator = SessionCoordinator(
            store, BrokenSink(), SummarizationGateway(llm), clock=clock, scheduler=scheduler
        )
        code = store.create()

        message = asyncio.run(coordinator.send_message(code, "Alice", "hi"))
        assert store.get(code).messages == [message]
