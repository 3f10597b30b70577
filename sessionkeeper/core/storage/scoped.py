from __future__ import annotations

import logging
from typing import Callable, Generic, Optional, TypeVar

from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from sessionkeeper.core.errors import StorageError
from sessionkeeper.core.storage.kv import KeyValueStore

T = TypeVar("T")


def scoped_key(collection_key: str, user_id: str) -> str:
    return f"{collection_key}_{user_id}"


class UserScopedStore(Generic[T]):
    """
    Durable persistence for one collection kind, partitioned by user id.

    - load(): never raises; missing or unreadable data yields the default value
    - save(): best-effort; failures are logged, in-memory state stays authoritative
    - clear_durable(): drops the durable copy (account deletion, not logout)
    - no user id means no-op; nothing is ever persisted anonymously
    """

    def __init__(
        self,
        *,
        kv: KeyValueStore,
        collection_key: str,
        adapter: TypeAdapter,
        default_factory: Callable[[], T],
        logger: Optional[logging.Logger] = None,
    ):
        if not str(collection_key or "").strip():
            raise ValueError("collection_key required")
        self.kv = kv
        self.collection_key = str(collection_key)
        self.adapter = adapter
        self.default_factory = default_factory
        self.logger = logger or logging.getLogger("sessionkeeper.storage")

    def key_for(self, user_id: str) -> str:
        return scoped_key(self.collection_key, user_id)

    def load(self, user_id: Optional[str]) -> T:
        uid = str(user_id or "").strip()
        if not uid:
            return self.default_factory()
        key = self.key_for(uid)
        try:
            raw = self.kv.get(key)
        except (StorageError, OSError) as e:
            self.logger.warning("load %s failed: %s", key, e)
            return self.default_factory()
        if raw is None:
            return self.default_factory()
        try:
            return self.adapter.validate_json(raw)
        except (PydanticValidationError, ValueError) as e:
            self.logger.warning("load %s: unreadable value, using empty %s (%s)", key, self.collection_key, str(e)[:200])
            return self.default_factory()

    def save(self, user_id: Optional[str], value: T) -> None:
        uid = str(user_id or "").strip()
        if not uid:
            self.logger.debug("save %s skipped: no active user", self.collection_key)
            return
        key = self.key_for(uid)
        try:
            raw = self.adapter.dump_json(value, by_alias=True).decode("utf-8")
            self.kv.set(key, raw)
        except (StorageError, OSError, PydanticValidationError, ValueError, TypeError) as e:
            self.logger.warning("save %s failed: %s", key, e)

    def clear_durable(self, user_id: Optional[str]) -> None:
        uid = str(user_id or "").strip()
        if not uid:
            return
        key = self.key_for(uid)
        try:
            self.kv.remove(key)
        except (StorageError, OSError) as e:
            self.logger.warning("clear %s failed: %s", key, e)
