"""语音采集控制器。

引擎的识别结果是异步、带外送达的，控制器把“用户点击停止”与
“引擎真正结束”解耦：stop() 只是请求，状态只在引擎自己的结束信号上变化，
因此在 Finalizing 完成之前不会有第二次 start() 抢跑。
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from echo_core.domain.exceptions import CapabilityUnavailable, CaptureInProgress
from echo_core.domain.states import VoiceCaptureState, next_voice_state
from echo_core.infrastructure.logging.logger import logger
from echo_core.voice.engine import VoiceEngine

TranscriptHandler = Callable[[str], None]
StateListener = Callable[[VoiceCaptureState], None]


class VoiceCaptureController:
    def __init__(self, engine: Optional[VoiceEngine] = None):
        self._engine = engine
        self._state = VoiceCaptureState.IDLE
        self._stop_requested = False
        self._transcript_handlers: List[TranscriptHandler] = []
        self._state_listeners: List[StateListener] = []

    @property
    def state(self) -> VoiceCaptureState:
        return self._state

    @property
    def available(self) -> bool:
        return self._engine is not None and bool(getattr(self._engine, "available", False))

    def on_transcript_ready(self, handler: TranscriptHandler) -> None:
        """注册 TranscriptReady 通知的接收者。"""

        self._transcript_handlers.append(handler)

    def subscribe(self, listener: StateListener) -> None:
        self._state_listeners.append(listener)

    def start(self) -> None:
        """Idle -> Listening。

        Raises:
            CaptureInProgress: 当前不是 Idle，状态不变。
            CapabilityUnavailable: 引擎缺失、不可用或启动失败，状态保持 Idle。
        """

        if self._state is not VoiceCaptureState.IDLE:
            raise CaptureInProgress(state=self._state.value)
        if not self.available:
            self._log(logging.WARNING, "Voice engine unavailable")
            raise CapabilityUnavailable()
        self._stop_requested = False
        self._transition("start")
        try:
            self._engine.start(self)
        except Exception as e:
            self._log(logging.WARNING, "Voice engine failed to start", error=str(e))
            if self._state is VoiceCaptureState.LISTENING:
                self._transition("ended")
            raise CapabilityUnavailable(message=f"Voice engine failed to start: {e}")

    def stop(self) -> None:
        """请求结束当前采集；只在 Listening 时生效，真正的状态变化等引擎回调。"""

        if self._state is not VoiceCaptureState.LISTENING or self._stop_requested:
            return
        self._stop_requested = True
        self._log(logging.INFO, "Voice capture stop requested")
        self._engine.stop()

    # ---- 引擎回调 ----

    def on_final_transcript(self, text: str) -> None:
        if self._state is not VoiceCaptureState.LISTENING:
            self._log(logging.WARNING, "Ignored transcript outside of an episode", state=self._state.value)
            return
        cleaned = (text or "").strip()
        if not cleaned:
            self._transition("ended")
            return
        self._transition("transcript")
        self._transition("finalized")
        self._log(logging.INFO, "Transcript ready", length=len(cleaned))
        for handler in list(self._transcript_handlers):
            handler(cleaned)

    def on_aborted(self) -> None:
        if self._state is not VoiceCaptureState.LISTENING:
            return
        self._transition("ended")

    def _transition(self, event: str) -> None:
        previous = self._state
        self._state = next_voice_state(self._state, event)
        self._log(logging.INFO, "Voice state changed", event=event, previous=previous.value, state=self._state.value)
        for listener in list(self._state_listeners):
            listener(self._state)

    @staticmethod
    def _log(level: int, msg: str, **fields: Any) -> None:
        payload: Dict[str, Any] = {"component": "voice_capture"}
        payload.update(fields)
        logger.log(level, msg, extra={"extra": payload})
