"""Local key-value storage for the extension, persisted as one JSON file."""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

DEVICE_INFO_KEY = "device_info_v1"
DEVICE_TOKEN_KEY = "device_token_v1"


class JsonFileStore:
    """load/save/clear over a JSON object on disk.

    Writes go to a temporary file that replaces the original, so a crash
    never leaves half a file behind.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read_all(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Storage file %s is corrupt, starting empty", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
        os.replace(tmp, self.path)

    def load(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._read_all().get(key)

    def save(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._read_all()
            data[key] = value
            self._write_all(data)

    def clear(self, key: Optional[str] = None) -> None:
        """Remove one key, or everything when no key is given."""
        with self._lock:
            if key is None:
                self._write_all({})
                return
            data = self._read_all()
            if data.pop(key, None) is not None:
                self._write_all(data)


class MemoryStore:
    """In-memory store with the same interface, for tests and ephemeral runs."""

    def __init__(self):
        self._data: dict[str, Any] = {}

    def load(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    def save(self, key: str, value: Any) -> None:
        self._data[key] = json.loads(json.dumps(value))

    def clear(self, key: Optional[str] = None) -> None:
        if key is None:
            self._data.clear()
        else:
            self._data.pop(key, None)
