from __future__ import annotations

import copy
import logging
import threading
from typing import Callable, Generic, Optional, TypeVar

from sessionkeeper.core.errors import StateTransitionError
from sessionkeeper.core.storage.scoped import UserScopedStore

T = TypeVar("T")


class UserScopedCollection(Generic[T]):
    """
    In-memory view of one user's collection, backed by a UserScopedStore.

    The view is bound to at most one user at a time. Writes name the user they expect
    to be active; a write for anyone else is rejected (logged, no-op). Every accepted
    mutation is persisted before the call returns.
    """

    name = "collection"

    def __init__(self, store: UserScopedStore[T], *, lock: Optional[threading.RLock] = None, logger: Optional[logging.Logger] = None):
        self.store = store
        self.lock = lock or threading.RLock()
        self.logger = logger or logging.getLogger(f"sessionkeeper.cache.{self.name}")
        self._user_id: Optional[str] = None
        self._value: T = store.default_factory()

    @property
    def active_user_id(self) -> Optional[str]:
        return self._user_id

    def is_attached(self) -> bool:
        return self._user_id is not None

    def snapshot(self) -> T:
        with self.lock:
            return copy.deepcopy(self._value)

    def attach(self, user_id: str, value: T) -> None:
        uid = str(user_id or "").strip()
        if not uid:
            raise ValueError("user_id required")
        with self.lock:
            if self._user_id is not None and self._user_id != uid:
                raise StateTransitionError("Cache still bound to another user.", collection=self.name, active=self._user_id, requested=uid)
            self._user_id = uid
            self._value = self._normalize(value)

    def detach(self) -> Optional[str]:
        with self.lock:
            prev = self._user_id
            self._user_id = None
            self._value = self.store.default_factory()
            return prev

    def _normalize(self, value: T) -> T:
        return value

    def _guard(self, user_id: Optional[str], action: str) -> bool:
        if self._user_id is None:
            self.logger.warning("%s.%s rejected: no active user", self.name, action)
            return False
        if str(user_id or "") != self._user_id:
            self.logger.warning("%s.%s rejected: user %r is not the active user", self.name, action, user_id)
            return False
        return True

    def _commit(self, value: T) -> None:
        self._value = value
        self.store.save(self._user_id, value)

    def _mutate(self, user_id: Optional[str], action: str, fn: Callable[[T], T]) -> bool:
        with self.lock:
            if not self._guard(user_id, action):
                return False
            self._commit(fn(copy.deepcopy(self._value)))
            return True
