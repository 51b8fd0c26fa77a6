import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from .exceptions import MalformedPersistedState
from .models import ROLES, ConversationHistory, Message


class KeyValueStore(Protocol):
    """持久化键值存储能力，MessageStore 通过它读写序列化后的历史。"""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


def _format_ts(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_ts(value: Any) -> datetime:
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def serialize_history(history: ConversationHistory) -> str:
    payload: List[Dict[str, Any]] = [
        {"role": m.role, "content": m.content, "created_at": _format_ts(m.created_at)}
        for m in history
    ]
    return json.dumps(payload, ensure_ascii=False)


def deserialize_history(raw: str) -> ConversationHistory:
    """把存储中的 JSON 还原为历史。

    任何一条记录不合法都视为整体损坏，抛出 MalformedPersistedState。
    兼容旧格式中用 "time" 表示创建时间的记录。
    """

    try:
        data = json.loads(raw)
    except (TypeError, ValueError, RecursionError) as e:
        raise MalformedPersistedState(message=f"invalid JSON: {e}")
    if not isinstance(data, list):
        raise MalformedPersistedState(message=f"expected a list, got {type(data).__name__}")

    items: List[Message] = []
    for idx, entry in enumerate(data):
        if not isinstance(entry, dict):
            raise MalformedPersistedState(message=f"entry {idx} is not an object")
        role = entry.get("role")
        content = entry.get("content")
        ts = entry.get("created_at", entry.get("time"))
        if role not in ROLES or not isinstance(content, str) or ts is None:
            raise MalformedPersistedState(message=f"entry {idx} is missing role/content/created_at")
        try:
            created_at = _parse_ts(ts)
        except ValueError as e:
            raise MalformedPersistedState(message=f"entry {idx} has a bad timestamp: {e}")
        items.append(Message(role=role, content=content, created_at=created_at))
    return tuple(items)
