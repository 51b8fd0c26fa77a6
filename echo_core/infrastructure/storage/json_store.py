import os
import re
from pathlib import Path
from typing import Dict, Optional
from uuid import uuid4

from echo_core.config.settings import settings
from echo_core.domain.conversation import KeyValueStore
from echo_core.domain.exceptions import StorageError

_SAFE_KEY = re.compile(r"[^A-Za-z0-9_.-]")


class JsonFileKeyValueStore(KeyValueStore):
    """每个键对应 root 下的一个 JSON 文件，写入先落临时文件再原子替换。"""

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.storage_root).resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    def get(self, key: str) -> Optional[str]:
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(code="STORE_READ_ERROR", message=str(e), key=key)

    def set(self, key: str, value: str) -> None:
        path = self._path_for(key)
        tmp_path = path.with_name(f"{path.stem}.{uuid4().hex}.json.tmp")
        try:
            tmp_path.write_text(value, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise StorageError(code="STORE_WRITE_ERROR", message=str(e), key=key)

    def _path_for(self, key: str) -> Path:
        return self._root / f"{_SAFE_KEY.sub('_', key)}.json"


class InMemoryKeyValueStore(KeyValueStore):
    """基于 dict 的键值存储，用于测试与临时会话。"""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value
