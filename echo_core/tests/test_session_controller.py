import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from echo_core.domain.exceptions import ApiError, CapabilityUnavailable, RequestInProgress
from echo_core.domain.states import RequestPhase, VoiceCaptureState
from echo_core.infrastructure.storage.json_store import InMemoryKeyValueStore
from echo_core.session import AIRequestOrchestrator, MessageStore, SessionController
from echo_core.voice.capture import VoiceCaptureController


class TickingClock:
    def __init__(self):
        self._now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        self._now += timedelta(seconds=1)
        return self._now


class FakeService:
    name = "fake"

    def __init__(self, replies=None, observe=None):
        self._replies = list(replies or [])
        self._observe = observe
        self.calls = []

    async def complete(self, messages):
        self.calls.append([(m.role, m.content) for m in messages])
        if self._observe:
            self._observe()
        reply = self._replies.pop(0) if self._replies else "ok"
        if isinstance(reply, Exception):
            raise reply
        return reply


class GatedService(FakeService):
    def __init__(self):
        super().__init__()
        self.gate = asyncio.Event()

    async def complete(self, messages):
        self.calls.append([(m.role, m.content) for m in messages])
        await self.gate.wait()
        return "late"


class FakeVoiceEngine:
    available = True

    def __init__(self):
        self.listener = None
        self.stop_calls = 0

    def start(self, listener):
        self.listener = listener

    def stop(self):
        self.stop_calls += 1


def build(service, engine=None, kv=None):
    clock = TickingClock()
    store = MessageStore(kv or InMemoryKeyValueStore(), key="chatMessages")
    orchestrator = AIRequestOrchestrator(service, clock=clock)
    session = SessionController(store, orchestrator, VoiceCaptureController(engine), clock=clock)
    session.load()
    return session


def _pairs(history):
    return [(m.role, m.content) for m in history]


def test_submit_text_appends_user_and_assistant():
    service = FakeService(["Hello!"])
    session = build(service)

    outcome = asyncio.run(session.submit_text("Hi"))

    assert outcome.phase is RequestPhase.SUCCEEDED
    assert _pairs(session.history) == [("user", "Hi"), ("assistant", "Hello!")]
    assert service.calls == [[("user", "Hi")]]
    assert session.request_state.phase is RequestPhase.IDLE
    assert session.history[0].created_at < session.history[1].created_at


@pytest.mark.parametrize("text", ["", "   ", "\n\t"])
def test_blank_input_is_ignored(text):
    service = FakeService()
    session = build(service)
    assert asyncio.run(session.submit_text(text)) is None
    assert session.history == ()
    assert service.calls == []


def test_failure_keeps_user_message_and_retry_appends_one_reply():
    service = FakeService([ApiError(code="API_ERROR", message="bad gateway", http_status=502), "Hello!"])
    session = build(service)

    async def scenario():
        failed = await session.submit_text("Hi")
        assert failed.phase is RequestPhase.FAILED
        assert _pairs(session.history) == [("user", "Hi")]
        assert session.request_state.phase is RequestPhase.FAILED
        assert session.last_error.code == "API_ERROR"
        return await session.retry()

    retried = asyncio.run(scenario())
    assert retried.phase is RequestPhase.SUCCEEDED
    assert _pairs(session.history) == [("user", "Hi"), ("assistant", "Hello!")]
    assert service.calls == [[("user", "Hi")], [("user", "Hi")]]
    assert session.last_error is None


def test_retry_without_unanswered_message_is_noop():
    service = FakeService(["Hello!"])
    session = build(service)

    async def scenario():
        assert await session.retry() is None
        await session.submit_text("Hi")
        assert await session.retry() is None

    asyncio.run(scenario())
    assert len(service.calls) == 1


def test_history_order_follows_call_order():
    service = FakeService(["r1", "r2", "r3"])
    session = build(service)

    async def scenario():
        for text in ["one", "two", "three"]:
            await session.submit_text(text)

    asyncio.run(scenario())
    assert _pairs(session.history) == [
        ("user", "one"), ("assistant", "r1"),
        ("user", "two"), ("assistant", "r2"),
        ("user", "three"), ("assistant", "r3"),
    ]
    assert service.calls[-1][:2] == [("user", "one"), ("assistant", "r1")]


def test_submit_while_pending_is_rejected_without_touching_history():
    service = GatedService()
    session = build(service)

    async def scenario():
        first = asyncio.create_task(session.submit_text("Hi"))
        await asyncio.sleep(0)
        assert session.request_state.is_pending
        assert not session.snapshot().can_submit
        with pytest.raises(RequestInProgress):
            await session.submit_text("again")
        assert _pairs(session.history) == [("user", "Hi")]
        service.gate.set()
        await first

    asyncio.run(scenario())
    assert _pairs(session.history) == [("user", "Hi"), ("assistant", "late")]


def test_voice_transcript_submits_after_capture_returns_to_idle():
    engine = FakeVoiceEngine()
    states_at_call = []
    service = FakeService(["Calling."], observe=lambda: states_at_call.append(session.voice_state))
    session = build(service, engine)

    async def scenario():
        assert session.toggle_voice() is VoiceCaptureState.LISTENING
        engine.listener.on_final_transcript("call mom")
        await session.join()

    asyncio.run(scenario())
    assert states_at_call == [VoiceCaptureState.IDLE]
    assert _pairs(session.history) == [("user", "call mom"), ("assistant", "Calling.")]


def test_voice_transcript_uses_history_at_delivery_time():
    engine = FakeVoiceEngine()
    service = FakeService(["typed reply", "voice reply"])
    session = build(service, engine)

    async def scenario():
        session.toggle_voice()
        await session.submit_text("typed while listening")
        engine.listener.on_final_transcript("spoken")
        await session.join()

    asyncio.run(scenario())
    assert _pairs(session.history) == [
        ("user", "typed while listening"),
        ("assistant", "typed reply"),
        ("user", "spoken"),
        ("assistant", "voice reply"),
    ]


def test_voice_transcript_while_pending_is_surfaced():
    engine = FakeVoiceEngine()
    service = GatedService()
    session = build(service, engine)
    snapshots = []
    session.subscribe(snapshots.append)

    async def scenario():
        session.toggle_voice()
        typed = asyncio.create_task(session.submit_text("Hi"))
        await asyncio.sleep(0)
        engine.listener.on_final_transcript("spoken")
        await session.join()
        assert isinstance(session.last_error, RequestInProgress)
        service.gate.set()
        await typed

    asyncio.run(scenario())
    assert _pairs(session.history) == [("user", "Hi"), ("assistant", "late")]
    assert any(isinstance(s.last_error, RequestInProgress) for s in snapshots)


def test_toggle_voice_dispatches_on_state():
    engine = FakeVoiceEngine()
    session = build(FakeService(), engine)
    assert session.toggle_voice() is VoiceCaptureState.LISTENING
    assert session.toggle_voice() is VoiceCaptureState.LISTENING
    assert engine.stop_calls == 1
    engine.listener.on_aborted()
    assert session.voice_state is VoiceCaptureState.IDLE
    assert session.history == ()


def test_toggle_voice_without_engine_raises():
    session = build(FakeService())
    with pytest.raises(CapabilityUnavailable):
        session.toggle_voice()
    assert session.voice_state is VoiceCaptureState.IDLE


def test_history_is_restored_from_storage():
    kv = InMemoryKeyValueStore()
    asyncio.run(build(FakeService(["Hello!"]), kv=kv).submit_text("Hi"))
    restored = build(FakeService(), kv=kv)
    assert _pairs(restored.history) == [("user", "Hi"), ("assistant", "Hello!")]


def test_dismiss_error_resets_request_state():
    session = build(FakeService([ApiError(code="API_ERROR", message="down")]))
    asyncio.run(session.submit_text("Hi"))
    assert session.request_state.phase is RequestPhase.FAILED
    session.dismiss_error()
    assert session.request_state.phase is RequestPhase.IDLE
    assert session.last_error is None
    assert _pairs(session.history) == [("user", "Hi")]


def test_non_text_reply_does_not_corrupt_stored_history():
    kv = InMemoryKeyValueStore()
    session = build(FakeService(["Hello!", [{"type": "text", "text": "hi"}]]), kv=kv)

    asyncio.run(session.submit_text("Hi"))
    outcome = asyncio.run(session.submit_text("And now?"))

    assert outcome.phase is RequestPhase.FAILED
    assert outcome.reason == "INVALID_RESPONSE"
    expected = [("user", "Hi"), ("assistant", "Hello!"), ("user", "And now?")]
    assert _pairs(session.history) == expected
    assert _pairs(MessageStore(kv, key="chatMessages").load()) == expected


def test_naive_clock_history_reloads_unchanged():
    class NaiveClock:
        def __init__(self):
            self._now = datetime(2024, 5, 1, 12, 0)

        def __call__(self):
            self._now += timedelta(seconds=1)
            return self._now

    kv = InMemoryKeyValueStore()
    clock = NaiveClock()
    store = MessageStore(kv, key="chatMessages")
    session = SessionController(store, AIRequestOrchestrator(FakeService(["Hello!"]), clock=clock), VoiceCaptureController(None), clock=clock)
    session.load()

    asyncio.run(session.submit_text("Hi"))

    assert MessageStore(kv, key="chatMessages").load() == session.history
