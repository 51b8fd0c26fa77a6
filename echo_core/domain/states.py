"""语音采集与 AI 请求的状态机。

两个状态机都用“当前状态 -> 新状态”的纯函数描述，
控制器只负责在合适的事件上调用这些函数并保存结果，
因此状态迁移规则与任何渲染机制无关，可以单独测试。
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from .exceptions import CompletionFailed
from .models import Message


class VoiceCaptureState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    FINALIZING = "finalizing"


class InvalidTransition(RuntimeError):
    """状态机收到当前状态下不允许的事件（属于编程错误）。"""


# 事件 -> {起始状态: 目标状态}
_VOICE_TRANSITIONS = {
    "start": {VoiceCaptureState.IDLE: VoiceCaptureState.LISTENING},
    "transcript": {VoiceCaptureState.LISTENING: VoiceCaptureState.FINALIZING},
    "finalized": {VoiceCaptureState.FINALIZING: VoiceCaptureState.IDLE},
    "ended": {VoiceCaptureState.LISTENING: VoiceCaptureState.IDLE},
}


def next_voice_state(state: VoiceCaptureState, event: str) -> VoiceCaptureState:
    """返回 event 之后的语音采集状态，不允许的迁移抛出 InvalidTransition。"""

    try:
        return _VOICE_TRANSITIONS[event][state]
    except KeyError:
        raise InvalidTransition(f"voice capture cannot handle {event!r} in state {state.value}")


class RequestPhase(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class RequestState:
    """AI 请求的生命周期状态。

    - phase: 当前阶段。
    - message: SUCCEEDED 时携带的助手消息。
    - error: FAILED 时携带的失败信息，error.reason 为失败原因。
    """

    phase: RequestPhase = RequestPhase.IDLE
    message: Optional[Message] = None
    error: Optional[CompletionFailed] = None

    @property
    def is_pending(self) -> bool:
        return self.phase is RequestPhase.PENDING

    @property
    def is_terminal(self) -> bool:
        return self.phase in (RequestPhase.SUCCEEDED, RequestPhase.FAILED)

    @property
    def reason(self) -> Optional[str]:
        return self.error.reason if self.error else None


IDLE_REQUEST = RequestState()


def begin_request(state: RequestState) -> RequestState:
    # 未被消费的终态视为已交付，直接进入新的 Pending
    if state.is_pending:
        raise InvalidTransition("request already pending")
    return RequestState(phase=RequestPhase.PENDING)


def complete_request(state: RequestState, message: Message) -> RequestState:
    if not state.is_pending:
        raise InvalidTransition(f"cannot succeed from {state.phase.value}")
    return replace(state, phase=RequestPhase.SUCCEEDED, message=message)


def fail_request(state: RequestState, error: CompletionFailed) -> RequestState:
    if not state.is_pending:
        raise InvalidTransition(f"cannot fail from {state.phase.value}")
    return replace(state, phase=RequestPhase.FAILED, error=error)


def reset_request(state: RequestState) -> RequestState:
    if state.is_pending:
        raise InvalidTransition("cannot reset a pending request")
    return IDLE_REQUEST
