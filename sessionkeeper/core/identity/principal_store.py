from __future__ import annotations

import logging
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from sessionkeeper.core.errors import StorageError
from sessionkeeper.core.identity.models import Principal
from sessionkeeper.core.storage.kv import KeyValueStore

USER_KEY = "user"


class PrincipalStore:
    """
    The durably remembered signed-in principal (the `user` key). Never raises.
    """

    def __init__(self, kv: KeyValueStore, *, logger: Optional[logging.Logger] = None):
        self.kv = kv
        self.logger = logger or logging.getLogger("sessionkeeper.identity.principal")

    def load(self) -> Optional[Principal]:
        try:
            raw = self.kv.get(USER_KEY)
        except (StorageError, OSError) as e:
            self.logger.warning("load principal failed: %s", e)
            return None
        if raw is None:
            return None
        try:
            return Principal.model_validate_json(raw)
        except (PydanticValidationError, ValueError) as e:
            self.logger.warning("persisted principal unreadable; starting anonymous (%s)", str(e)[:200])
            return None

    def save(self, principal: Principal) -> None:
        try:
            self.kv.set(USER_KEY, principal.model_dump_json(by_alias=True))
        except (StorageError, OSError) as e:
            self.logger.warning("save principal failed: %s", e)

    def clear(self) -> None:
        try:
            self.kv.remove(USER_KEY)
        except (StorageError, OSError) as e:
            self.logger.warning("clear principal failed: %s", e)
