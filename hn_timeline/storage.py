"""
Persistent key-value stores.

Values are opaque strings (callers store JSON). Implementations may raise on
I/O problems; every caller treats reads and writes as best-effort and degrades
to "nothing stored" instead of failing.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Optional, Protocol

from hn_timeline.cache_utils import atomic_write_json, evict_old_cache_files
from hn_timeline.constants import STORAGE_MAX_FILES


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...


class MemoryStore:
    """In-process store, for tests and runs without a cache directory."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value


class FileStore:
    """One JSON file per key, named by the key's md5, written atomically."""

    def __init__(self, directory: Path, max_files: int = STORAGE_MAX_FILES) -> None:
        self.directory = directory
        self.max_files = max_files

    def _path(self, key: str) -> Path:
        return self.directory / f"{hashlib.md5(key.encode()).hexdigest()}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        data = json.loads(path.read_text())
        if not isinstance(data, dict) or data.get("key") != key:
            return None
        value = data.get("value")
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        atomic_write_json(path, {"key": key, "value": value})
        evict_old_cache_files(self.directory, "*.json", self.max_files, keep=path)
