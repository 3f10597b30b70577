from __future__ import annotations

import logging
import threading
from typing import List, Optional, Sequence

from sessionkeeper.core.cache.collection import UserScopedCollection
from sessionkeeper.core.events.bus import EventBus
from sessionkeeper.core.events.models import SourceSubsystem


class MultiTenantCacheCoordinator:
    """
    Swaps the per-user collections when the authenticated principal changes.

    Detach of the previous user always completes (for every collection) before any
    collection is attached to the next user.
    """

    def __init__(
        self,
        collections: Sequence[UserScopedCollection],
        *,
        bus: Optional[EventBus] = None,
        lock: Optional[threading.RLock] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.collections: List[UserScopedCollection] = list(collections)
        self.bus = bus
        self.lock = lock or threading.RLock()
        self.logger = logger or logging.getLogger("sessionkeeper.cache")

    def active_user_id(self) -> Optional[str]:
        ids = {c.active_user_id for c in self.collections}
        if len(ids) == 1:
            return next(iter(ids))
        # collections disagree: treat as none active
        return None

    def switch_user(self, previous_user_id: Optional[str], next_user_id: Optional[str]) -> None:
        prev = str(previous_user_id or "").strip() or None
        nxt = str(next_user_id or "").strip() or None
        with self.lock:
            if nxt is None or prev != nxt:
                self._detach_all(expected=prev)
            if nxt is None:
                return
            for c in self.collections:
                if c.active_user_id not in (None, nxt):
                    # caller's view of who was active was stale
                    self.logger.warning("%s bound to unexpected user; detaching before attach", c.name)
                    c.detach()
                c.attach(nxt, c.store.load(nxt))
            self.logger.info("caches attached for user %s", nxt)
            self._emit("cache.attached", {"user_id": nxt, "collections": [c.name for c in self.collections]})

    def _detach_all(self, *, expected: Optional[str]) -> None:
        detached = []
        for c in self.collections:
            was = c.detach()
            if was is not None:
                detached.append(was)
                if expected is not None and was != expected:
                    self.logger.warning("%s was bound to %s, expected %s", c.name, was, expected)
        if detached:
            self.logger.info("caches detached for user %s", detached[0])
            self._emit("cache.detached", {"user_id": detached[0], "collections": [c.name for c in self.collections]})

    def _emit(self, event_type: str, payload: dict) -> None:
        if self.bus is not None:
            self.bus.emit(event_type, SourceSubsystem.cache, payload)
