from __future__ import annotations

"""
Simulated user directory (the `users` key). Stands in for a real account service:
registration, credential verification and profile edits.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional

from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from sessionkeeper.core.errors import EmailAlreadyInUseError, StorageError
from sessionkeeper.core.identity.models import Credentials, Principal, RegisterData, UserRecord, avatar_url
from sessionkeeper.core.identity.passwords import hash_password, verify_password
from sessionkeeper.core.storage.kv import KeyValueStore

USERS_KEY = "users"

_USERS = TypeAdapter(List[UserRecord])


def _norm_email(email: str) -> str:
    return str(email or "").strip().lower()


def _wall_ms() -> float:
    return time.time() * 1000.0


class UserDirectory:
    def __init__(self, kv: KeyValueStore, *, clock_ms: Callable[[], float] = _wall_ms, logger: Optional[logging.Logger] = None):
        self.kv = kv
        self.clock_ms = clock_ms
        self.logger = logger or logging.getLogger("sessionkeeper.identity.directory")

    def list_users(self) -> List[UserRecord]:
        raw = None
        try:
            raw = self.kv.get(USERS_KEY)
        except (StorageError, OSError) as e:
            self.logger.warning("load users failed: %s", e)
        if raw is None:
            return []
        try:
            return _USERS.validate_json(raw)
        except (PydanticValidationError, ValueError) as e:
            self.logger.warning("users directory unreadable; treating as empty (%s)", str(e)[:200])
            return []

    def find_by_email(self, email: str) -> Optional[UserRecord]:
        target = _norm_email(email)
        for u in self.list_users():
            if _norm_email(u.email) == target:
                return u
        return None

    def get(self, user_id: str) -> Optional[UserRecord]:
        for u in self.list_users():
            if u.id == user_id:
                return u
        return None

    def verify(self, credentials: Credentials) -> Optional[Principal]:
        u = self.find_by_email(credentials.email)
        if u is None:
            return None
        if not verify_password(credentials.password, u.password_hash):
            return None
        return u.to_principal()

    def register(self, data: RegisterData) -> Principal:
        users = self.list_users()
        email = _norm_email(data.email)
        if any(_norm_email(u.email) == email for u in users):
            raise EmailAlreadyInUseError(email=email)
        now_ms = int(self.clock_ms())
        taken = {u.id for u in users}
        while str(now_ms) in taken:
            now_ms += 1
        rec = UserRecord(
            id=str(now_ms),
            email=email,
            name=data.name.strip(),
            password_hash=hash_password(data.password),
            created_at=datetime.fromtimestamp(now_ms / 1000.0, tz=timezone.utc),
            avatar=avatar_url(data.name.strip()),
        )
        self._save(users + [rec])
        self.logger.info("registered user %s", rec.id)
        return rec.to_principal()

    def update_profile(self, user_id: str, *, name: Optional[str] = None, email: Optional[str] = None) -> Optional[Principal]:
        users = self.list_users()
        for i, u in enumerate(users):
            if u.id != user_id:
                continue
            update = {}
            if name is not None and name.strip() and name.strip() != u.name:
                update["name"] = name.strip()
                update["avatar"] = avatar_url(name.strip())
            if email is not None and _norm_email(email) != _norm_email(u.email):
                if any(_norm_email(o.email) == _norm_email(email) for o in users if o.id != user_id):
                    raise EmailAlreadyInUseError(email=_norm_email(email))
                update["email"] = _norm_email(email)
            if update:
                users[i] = u.model_copy(update=update)
                self._save(users)
            return users[i].to_principal()
        return None

    def delete(self, user_id: str) -> bool:
        users = self.list_users()
        keep = [u for u in users if u.id != user_id]
        if len(keep) == len(users):
            return False
        self._save(keep)
        return True

    def _save(self, users: List[UserRecord]) -> None:
        raw = _USERS.dump_json(users, by_alias=True).decode("utf-8")
        try:
            self.kv.set(USERS_KEY, raw)
        except (StorageError, OSError) as e:
            self.logger.error("save users failed: %s", e)
