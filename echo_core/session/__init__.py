"""会话编排层：历史存储、AI 请求编排与会话控制器。"""

from .controller import SessionController, SessionSnapshot
from .message_store import MessageStore
from .orchestrator import AIRequestOrchestrator

__all__ = ["AIRequestOrchestrator", "MessageStore", "SessionController", "SessionSnapshot"]
