"""补全服务抽象接口。

会话核心不直接依赖具体厂商的 HTTP 接口，而是依赖此协议：
给定有序的消息列表，返回助手回复文本；失败时抛出 BusinessError 子类
（NetworkError / ApiError / RateLimitError / ValidationError）。
"""

from typing import Protocol, Sequence

from echo_core.domain.models import ChatMessage


class CompletionService(Protocol):
    """AI 补全服务协议。

    - name: Provider 名称，用于日志。
    - complete(messages): 一次非流式往返调用，返回回复文本。
    """

    name: str

    async def complete(self, messages: Sequence[ChatMessage]) -> str:
        ...
