"""会话历史存储。

MessageStore 独占会话历史：所有修改都经过 append，
append 在返回前同步持久化，保证存储中的历史始终是内存历史在
最近一次成功写入时的完整快照。
"""

import logging
from typing import Any, Dict

from echo_core.config.settings import settings
from echo_core.domain.conversation import KeyValueStore, deserialize_history, serialize_history
from echo_core.domain.exceptions import MalformedPersistedState, StorageError
from echo_core.domain.models import ConversationHistory, Message
from echo_core.infrastructure.logging.logger import logger


class MessageStore:
    def __init__(self, kv: KeyValueStore, key: str | None = None):
        self._kv = kv
        self._key = key or settings.history_key
        self._history: ConversationHistory = ()

    @property
    def history(self) -> ConversationHistory:
        return self._history

    def load(self) -> ConversationHistory:
        """从存储重建历史；没有数据、无法读取或数据损坏时返回空历史，从不让调用方失败。"""

        try:
            raw = self._kv.get(self._key)
        except StorageError as e:
            self._log(logging.WARNING, "Unreadable history treated as absent", key=self._key, error=e.message)
            raw = None
        if raw is None:
            self._history = ()
            return self._history
        try:
            self._history = deserialize_history(raw)
        except MalformedPersistedState as e:
            self._log(logging.WARNING, "Discarded malformed history", key=self._key, error=e.message)
            self._history = ()
            return self._history
        self._log(logging.INFO, "Loaded history", key=self._key, count=len(self._history))
        return self._history

    def append(self, message: Message) -> ConversationHistory:
        """追加一条消息并同步持久化，写入失败时内存历史保持不变。"""

        updated = self._history + (message,)
        self._kv.set(self._key, serialize_history(updated))
        self._history = updated
        self._log(logging.INFO, "Appended message", role=message.role, count=len(updated))
        return updated

    def _log(self, level: int, msg: str, **fields: Any) -> None:
        payload: Dict[str, Any] = {"component": "message_store"}
        payload.update(fields)
        logger.log(level, msg, extra={"extra": payload})
