"""对外 API 服务模块。

提供简化的函数接口供上层应用（控制台、GUI）调用。
"""

from typing import Any, Dict, List, Optional

from echo_core.config.settings import settings
from echo_core.domain.models import Message
from echo_core.domain.states import RequestPhase
from echo_core.infrastructure.logging.logger import logger
from echo_core.infrastructure.storage.json_store import JsonFileKeyValueStore
from echo_core.providers import create_provider
from echo_core.session import AIRequestOrchestrator, MessageStore, SessionController
from echo_core.voice.capture import VoiceCaptureController
from echo_core.voice.engine import VoiceEngine


_session: Optional[SessionController] = None


def build_session(voice_engine: Optional[VoiceEngine] = None, provider_name: Optional[str] = None) -> SessionController:
    """按配置组装一个会话并从存储恢复历史。"""

    store = MessageStore(JsonFileKeyValueStore(root=settings.storage_root), key=settings.history_key)
    orchestrator = AIRequestOrchestrator(create_provider(provider_name))
    session = SessionController(store, orchestrator, VoiceCaptureController(voice_engine))
    session.load()
    return session


def get_default_session() -> SessionController:
    """获取默认会话实例（单例，无语音引擎）。"""
    global _session
    if _session is None:
        _session = build_session()
    return _session


def _message_to_dict(m: Message) -> Dict[str, Any]:
    return {"role": m.role, "content": m.content, "created_at": m.created_at.isoformat()}


async def submit_message(user_input: str) -> Dict[str, Any]:
    """提交一条用户输入并返回本轮结果。

    Returns:
        包含 status（ignored / succeeded / failed）、助手消息或错误信息的字典

    Raises:
        RequestInProgress: 上一个请求尚未完成
    """
    session = get_default_session()
    outcome = await session.submit_text(user_input)
    if outcome is None:
        return {"status": "ignored"}
    if outcome.phase is RequestPhase.SUCCEEDED:
        return {"status": "succeeded", "assistant_message": _message_to_dict(outcome.message)}
    logger.error(f"Chat failed: {outcome.reason}", extra={"extra": {
        "reason": outcome.reason,
        "error": outcome.error.message if outcome.error else None,
    }})
    return {
        "status": "failed",
        "error": {"code": outcome.reason, "message": outcome.error.message if outcome.error else ""},
    }


def get_history() -> List[Dict[str, Any]]:
    """获取当前会话的全部消息。"""
    return [_message_to_dict(m) for m in get_default_session().history]
