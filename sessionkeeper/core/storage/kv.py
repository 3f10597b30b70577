from __future__ import annotations

import logging
import os
import shutil
import threading
import time
from typing import Dict, List, Optional, Protocol

from sessionkeeper.core.config.io import atomic_write_json, read_json_file
from sessionkeeper.core.errors import StorageError


class KeyValueStore(Protocol):
    """
    String-keyed durable store holding serialized (string) values.
    """

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...

    def keys(self) -> List[str]: ...


class MemoryKeyValueStore:
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._lock = threading.Lock()
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(str(key))

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise StorageError("Stored values must be strings.", key=key)
        with self._lock:
            self._data[str(key)] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(str(key), None)

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._data)


class JsonFileKeyValueStore:
    """
    One JSON object file: {key: serialized value}. Every write replaces the file atomically.

    A corrupt file is moved aside as <name>.<ts>.corrupt.json and the store starts empty.
    """

    def __init__(self, path: str, *, logger: Optional[logging.Logger] = None):
        self.path = path
        self.logger = logger or logging.getLogger("sessionkeeper.storage")
        self._lock = threading.Lock()
        self._data: Dict[str, str] = self._load()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(str(key))

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise StorageError("Stored values must be strings.", key=key)
        with self._lock:
            updated = dict(self._data)
            updated[str(key)] = value
            self._write(updated)
            self._data = updated

    def remove(self, key: str) -> None:
        with self._lock:
            if str(key) not in self._data:
                return
            updated = dict(self._data)
            updated.pop(str(key), None)
            self._write(updated)
            self._data = updated

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._data)

    def _write(self, data: Dict[str, str]) -> None:
        try:
            atomic_write_json(self.path, data)
        except OSError as e:
            raise StorageError("Could not write storage file.", path=self.path, error=str(e)) from e

    def _load(self) -> Dict[str, str]:
        res = read_json_file(self.path)
        if res.ok:
            return {str(k): v for k, v in res.data.items() if isinstance(v, str)}
        if res.error == "missing":
            return {}
        self.logger.warning("storage file unreadable (%s); starting empty", res.error)
        if os.path.exists(self.path):
            ts = time.strftime("%Y%m%d_%H%M%S", time.gmtime())
            try:
                shutil.move(self.path, f"{self.path}.{ts}.corrupt.json")
            except OSError as e:
                self.logger.warning("could not move corrupt storage file aside: %s", e)
        return {}
