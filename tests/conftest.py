"""Shared fakes for room/session tests."""

import pytest

from convo.services.room_store import RoomStore
from convo.services.session_coordinator import SessionCoordinator
from convo.services.summarization_gateway import SummarizationGateway


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.current = start

    def now(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


class FakeTimer:
    def __init__(self, due, callback, args):
        self.due = due
        self.callback = callback
        self.args = args
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """call_later that only fires when the test moves time forward."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.timers = []

    def call_later(self, delay, callback, *args):
        timer = FakeTimer(self.clock.now() + delay, callback, args)
        self.timers.append(timer)
        return timer

    def advance(self, seconds: float) -> None:
        self.clock.advance(seconds)
        due = sorted(
            (t for t in self.timers if not t.cancelled and not t.fired and t.due <= self.clock.now()),
            key=lambda t: t.due,
        )
        for timer in due:
            timer.fired = True
            timer.callback(*timer.args)


class RecordingSink:
    def __init__(self):
        self.events = []

    async def publish(self, room_code, event):
        self.events.append((room_code, event))

    def types(self, room_code=None):
        return [e["type"] for code, e in self.events if room_code is None or code == room_code]


class FakeReply:
    def __init__(self, content):
        self.content = content


class FakeLLM:
    """Stands in for the chat model: returns queued replies or raises."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.prompts = []
        self.gate = None

    async def ainvoke(self, prompt, **kwargs):
        self.prompts.append(prompt)
        if self.gate is not None:
            await self.gate.wait()
        reply = self.replies.pop(0) if self.replies else '{"summary": "ok", "keyPoints": [], "actionItems": []}'
        if isinstance(reply, Exception):
            raise reply
        return FakeReply(reply)

    @property
    def calls(self):
        return len(self.prompts)


VALID_REPLY = (
    '{"summary": "Alice and Bob said hello.", '
    '"keyPoints": ["Greetings exchanged"], '
    '"actionItems": ["Meet tomorrow"]}'
)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(clock):
    return FakeScheduler(clock)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def store(clock):
    return RoomStore(clock=clock)


@pytest.fixture
def coordinator(store, sink, llm, clock, scheduler):
    return SessionCoordinator(
        store=store,
        sink=sink,
        gateway=SummarizationGateway(llm),
        clock=clock,
        scheduler=scheduler,
        max_messages=5,
        max_message_length=50,
        grace_delay=2.0,
    )
