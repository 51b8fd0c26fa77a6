from datetime import datetime, timezone

import pytest

from echo_core.domain.exceptions import CompletionFailed
from echo_core.domain.models import Message
from echo_core.domain.states import (
    IDLE_REQUEST,
    InvalidTransition,
    RequestPhase,
    VoiceCaptureState,
    begin_request,
    complete_request,
    fail_request,
    next_voice_state,
    reset_request,
)


def test_voice_success_path():
    state = VoiceCaptureState.IDLE
    for event, expected in [
        ("start", VoiceCaptureState.LISTENING),
        ("transcript", VoiceCaptureState.FINALIZING),
        ("finalized", VoiceCaptureState.IDLE),
    ]:
        state = next_voice_state(state, event)
        assert state is expected


def test_voice_cancel_path_and_invalid_events():
    assert next_voice_state(VoiceCaptureState.LISTENING, "ended") is VoiceCaptureState.IDLE
    with pytest.raises(InvalidTransition):
        next_voice_state(VoiceCaptureState.LISTENING, "start")
    with pytest.raises(InvalidTransition):
        next_voice_state(VoiceCaptureState.IDLE, "transcript")


def test_request_lifecycle():
    msg = Message(role="assistant", content="ok", created_at=datetime.now(timezone.utc))
    pending = begin_request(IDLE_REQUEST)
    assert pending.is_pending
    done = complete_request(pending, msg)
    assert done.phase is RequestPhase.SUCCEEDED and done.message == msg
    assert reset_request(done) == IDLE_REQUEST

    failed = fail_request(begin_request(done), CompletionFailed(reason="TIMEOUT", message="slow"))
    assert failed.phase is RequestPhase.FAILED
    assert failed.reason == "TIMEOUT"
    assert failed.message is None


def test_request_invalid_transitions():
    pending = begin_request(IDLE_REQUEST)
    with pytest.raises(InvalidTransition):
        begin_request(pending)
    with pytest.raises(InvalidTransition):
        reset_request(pending)
    with pytest.raises(InvalidTransition):
        fail_request(IDLE_REQUEST, CompletionFailed(reason="API_ERROR", message="x"))
