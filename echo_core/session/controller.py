"""会话控制器。

SessionController 是组合根，也是唯一同时操作多个组件的写入者：
打字与语音两种输入都汇入 submit_text，历史顺序只由调用顺序决定。
UI 通过 subscribe 观察 SessionSnapshot，并调用 submit_text / toggle_voice。
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set

from echo_core.domain.exceptions import BusinessError, RequestInProgress
from echo_core.domain.models import Clock, ConversationHistory, Message, utc_now
from echo_core.domain.states import RequestPhase, RequestState, VoiceCaptureState
from echo_core.infrastructure.logging.logger import logger
from echo_core.session.message_store import MessageStore
from echo_core.session.orchestrator import AIRequestOrchestrator
from echo_core.voice.capture import VoiceCaptureController


@dataclass(frozen=True)
class SessionSnapshot:
    """UI 可观察的会话状态。"""

    history: ConversationHistory
    voice_state: VoiceCaptureState
    request_state: RequestState
    last_error: Optional[BusinessError] = None

    @property
    def can_submit(self) -> bool:
        return not self.request_state.is_pending


SnapshotListener = Callable[[SessionSnapshot], None]


class SessionController:
    def __init__(
        self,
        store: MessageStore,
        orchestrator: AIRequestOrchestrator,
        voice: VoiceCaptureController,
        clock: Clock = utc_now,
    ):
        self._store = store
        self._orchestrator = orchestrator
        self._voice = voice
        self._clock = clock
        self._last_error: Optional[BusinessError] = None
        self._listeners: List[SnapshotListener] = []
        self._tasks: Set[asyncio.Task] = set()

        self._voice.on_transcript_ready(self._on_transcript_ready)
        self._voice.subscribe(lambda _state: self._notify())
        self._orchestrator.subscribe(lambda _state: self._notify())

    # ---- 可观察状态 ----

    @property
    def history(self) -> ConversationHistory:
        return self._store.history

    @property
    def voice_state(self) -> VoiceCaptureState:
        return self._voice.state

    @property
    def request_state(self) -> RequestState:
        return self._orchestrator.state

    @property
    def last_error(self) -> Optional[BusinessError]:
        return self._last_error

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            history=self._store.history,
            voice_state=self._voice.state,
            request_state=self._orchestrator.state,
            last_error=self._last_error,
        )

    def subscribe(self, listener: SnapshotListener) -> None:
        self._listeners.append(listener)

    # ---- 操作 ----

    def load(self) -> ConversationHistory:
        """启动时从存储恢复历史。"""

        history = self._store.load()
        self._notify()
        return history

    async def submit_text(self, text: str) -> Optional[RequestState]:
        """提交一条用户消息并等待 AI 回复。

        空白输入直接忽略（返回 None）。Pending 时抛出 RequestInProgress，
        且不会追加用户消息。失败时用户消息保留在历史中，返回 FAILED 终态。
        """

        if not text or not text.strip():
            return None
        if self._orchestrator.is_pending:
            raise RequestInProgress()

        self._last_error = None
        history = self._store.append(Message(role="user", content=text, created_at=self._clock()))
        self._notify()
        return await self._send(history)

    async def retry(self) -> Optional[RequestState]:
        """用户主动重试：历史末尾是未得到回复的用户消息时，重新发送当前历史。"""

        history = self._store.history
        if not history or history[-1].role != "user":
            return None
        if self._orchestrator.is_pending:
            raise RequestInProgress()
        self._last_error = None
        return await self._send(history)

    async def _send(self, history: ConversationHistory) -> RequestState:
        outcome = await self._orchestrator.send(history)
        if outcome.phase is RequestPhase.SUCCEEDED:
            self._store.append(outcome.message)
            self._orchestrator.reset()
        else:
            # 失败终态保留给 UI 展示，下一次 send 时自动消费
            self._last_error = outcome.error
            self._log(logging.WARNING, "Submission failed", reason=outcome.reason)
            self._notify()
        return outcome

    def toggle_voice(self) -> VoiceCaptureState:
        """Idle 时开始采集，Listening 时请求停止；返回操作后的语音状态。"""

        if self._voice.state is VoiceCaptureState.IDLE:
            self._voice.start()
        else:
            self._voice.stop()
        return self._voice.state

    def dismiss_error(self) -> None:
        """UI 已展示失败信息后调用，清除错误并把请求状态归位到 Idle。"""

        self._last_error = None
        self._orchestrator.reset()
        self._notify()

    async def join(self) -> None:
        """等待所有由语音识别结果触发的提交完成。"""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ---- 内部 ----

    def _on_transcript_ready(self, text: str) -> None:
        # 总是基于送达时刻的最新历史提交
        task = asyncio.get_running_loop().create_task(self.submit_text(text))
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        if isinstance(exc, BusinessError):
            self._last_error = exc
            self._log(logging.WARNING, "Voice submission rejected", code=exc.code)
        else:
            logger.error(
                "Voice submission crashed",
                exc_info=(type(exc), exc, exc.__traceback__),
                extra={"extra": {"component": "session"}},
            )
        self._notify()

    def _notify(self) -> None:
        if not self._listeners:
            return
        snap = self.snapshot()
        for listener in list(self._listeners):
            listener(snap)

    @staticmethod
    def _log(level: int, msg: str, **fields: Any) -> None:
        payload: Dict[str, Any] = {"component": "session"}
        payload.update(fields)
        logger.log(level, msg, extra={"extra": payload})
