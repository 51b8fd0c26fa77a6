"""AI 请求编排。

AIRequestOrchestrator 是补全服务之上的纯传输/生命周期层：
- 单飞（single-flight）：Pending 时新的 send 立即抛出 RequestInProgress，不排队也不合并；
- 终态（Succeeded / Failed）一直可见，直到调用方 reset() 消费它或发起下一次 send；
- 不做自动重试，也不检查消息内容。
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from echo_core.domain.exceptions import BusinessError, CompletionFailed, RequestInProgress
from echo_core.domain.models import Clock, ConversationHistory, Message, utc_now
from echo_core.domain.states import (
    IDLE_REQUEST,
    RequestState,
    begin_request,
    complete_request,
    fail_request,
    reset_request,
)
from echo_core.infrastructure.logging.logger import logger
from echo_core.providers.base import CompletionService

StateListener = Callable[[RequestState], None]


class AIRequestOrchestrator:
    def __init__(self, service: CompletionService, clock: Clock = utc_now):
        self._service = service
        self._clock = clock
        self._state: RequestState = IDLE_REQUEST
        self._listeners: List[StateListener] = []

    @property
    def state(self) -> RequestState:
        return self._state

    @property
    def is_pending(self) -> bool:
        return self._state.is_pending

    def subscribe(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    async def send(self, history: ConversationHistory) -> RequestState:
        """把完整历史发给补全服务，返回终态（SUCCEEDED 或 FAILED）。

        Args:
            history: 调用时刻的历史快照，之后的追加不会影响本次请求。

        Raises:
            RequestInProgress: 已有请求处于 Pending，状态与历史均不变。
        """

        if self._state.is_pending:
            raise RequestInProgress()
        snapshot = tuple(history)
        log_ctx: Dict[str, Any] = {
            "request_id": f"rq-{uuid4().hex}",
            "provider": getattr(self._service, "name", "unknown"),
        }
        self._set_state(begin_request(self._state))
        self._log(logging.INFO, "Request started", log_ctx, messages=len(snapshot))

        start_time = time.time()
        try:
            content = await self._service.complete([m.to_chat_message() for m in snapshot])
        except asyncio.CancelledError:
            self._set_state(fail_request(self._state, CompletionFailed(reason="CANCELLED", message="request cancelled")))
            self._log(logging.WARNING, "Request cancelled", log_ctx)
            raise
        except BusinessError as e:
            failure = CompletionFailed(reason=e.code, message=e.message, http_status=e.http_status, **e.extra)
        except Exception as e:
            logger.exception("Completion service raised an unexpected error", extra={"extra": log_ctx})
            failure = CompletionFailed(reason="UNEXPECTED_ERROR", message=str(e) or type(e).__name__)
        else:
            failure = None
            if not isinstance(content, str):
                failure = CompletionFailed(
                    reason="INVALID_RESPONSE",
                    message=f"completion is {type(content).__name__}, expected str",
                )
        elapsed = round(time.time() - start_time, 2)

        if failure is not None:
            self._set_state(fail_request(self._state, failure))
            self._log(
                logging.WARNING,
                "Request failed",
                log_ctx,
                reason=failure.reason,
                error=failure.message,
                elapsed_seconds=elapsed,
            )
        else:
            reply = Message(role="assistant", content=content, created_at=self._clock())
            self._set_state(complete_request(self._state, reply))
            self._log(logging.INFO, "Request succeeded", log_ctx, elapsed_seconds=elapsed)
        return self._state

    def reset(self) -> Optional[RequestState]:
        """消费终态并回到 Idle，返回被消费的终态；Idle 时什么也不做。"""

        if not self._state.is_terminal:
            return None
        consumed = self._state
        self._set_state(reset_request(self._state))
        return consumed

    def _set_state(self, state: RequestState) -> None:
        self._state = state
        for listener in list(self._listeners):
            listener(state)

    @staticmethod
    def _log(level: int, msg: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, msg, extra={"extra": payload})
