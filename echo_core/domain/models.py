"""统一的消息与请求/结果数据模型。

本模块定义了会话核心与 Provider 之间共享的标准数据结构：

- Message: 会话历史中的一条消息（不可变），只有 user / assistant 两种角色。
- ChatMessage: 发给 Provider 的一条消息（role + content）。
- ChatRequest: 发给底层 LLM Provider 的完整请求。
- ChatResult: 从 Provider 解析后的统一响应结果。

Provider 适配器只依赖 ChatRequest / ChatResult，
并负责在各自的 API JSON 和这些模型之间做转换。
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Literal, Optional, Tuple


# 会话历史中允许出现的角色
Role = Literal["user", "assistant"]
ROLES = ("user", "assistant")

# 时钟能力：返回带时区的当前时间，测试中可注入固定时钟
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Message:
    """会话历史中的一条消息。

    - role: user 或 assistant。
    - content: 纯文本内容。
    - created_at: 创建时间（用户提交或助手回复完成的时刻）。

    一旦追加进历史就不会再被修改或重新排序。created_at 统一保存为 UTC，
    不带时区的时间按 UTC 解释。
    """

    role: Role
    content: str
    created_at: datetime

    def __post_init__(self) -> None:
        ts = self.created_at
        ts = ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts.astimezone(timezone.utc)
        object.__setattr__(self, "created_at", ts)

    def to_chat_message(self) -> "ChatMessage":
        return ChatMessage(role=self.role, content=self.content)


# 有序、不可变的会话历史快照
ConversationHistory = Tuple[Message, ...]


@dataclass
class ChatMessage:
    """发给 Provider 的一条消息，也用于解析 Provider 的响应。"""

    role: Role
    content: str


@dataclass
class ChatRequest:
    """一次完整的聊天请求。

    Provider 适配层负责把本结构转换成各家 API 的 JSON 请求体。
    """

    provider: str  # 逻辑 Provider 名，如 "openai"
    model: str  # 逻辑模型名，如 "chat"（再由 registry 映射为真实模型名）
    messages: List[ChatMessage]
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


@dataclass
class ChatUsage:
    """Provider 返回的 token 统计信息（统一格式）。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class ChatChoice:
    """单个候选回答（目前只用 index=0 的一条）。"""

    index: int
    message: ChatMessage
    finish_reason: Optional[str] = None


@dataclass
class ChatResult:
    """一次对话调用的最终结果。

    - provider: 逻辑 Provider 名。
    - model: 逻辑模型名。
    - choices: 一个或多个候选回答。
    - usage: 可选的 token 使用统计，记录在请求日志中。
    """

    provider: str
    model: str
    choices: List[ChatChoice]
    usage: Optional[ChatUsage] = None
