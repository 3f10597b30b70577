from __future__ import annotations

import json
import re
import time
import uuid
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sessionkeeper.core.events.log import redact

# "<topic>.<name>[.<name>...]", e.g. "session.warning", "auth.login.succeeded"
_EVENT_TYPE = re.compile(r"^[a-z]+(\.[a-z_]+)+$")
TOPICS = frozenset({"session", "auth", "cache", "storage", "error"})


class EventSeverity(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class SourceSubsystem(str, Enum):
    session = "session"
    auth = "auth"
    cache = "cache"
    storage = "storage"
    events = "events"


class BaseEvent(BaseModel):
    """
    One lifecycle notification. `trace_id` ties events of one session (session id)
    or one sign-in attempt together; payloads are redacted on construction.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    event_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    event_type: str
    timestamp: float = Field(default_factory=time.time)
    trace_id: Optional[str] = None
    source_subsystem: SourceSubsystem
    severity: EventSeverity = EventSeverity.INFO
    payload: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("event_type")
    @classmethod
    def _namespaced(cls, v: str) -> str:
        v = str(v or "").strip().lower()
        if not _EVENT_TYPE.match(v):
            raise ValueError(f"event_type must look like 'topic.name', got {v!r}")
        if v.split(".", 1)[0] not in TOPICS:
            raise ValueError(f"unknown event topic in {v!r}")
        return v

    @field_validator("payload")
    @classmethod
    def _redacted_json(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        safe = redact(v)
        try:
            json.dumps(safe, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise ValueError("payload must be JSON-serializable") from e
        return safe

    @property
    def topic(self) -> str:
        return self.event_type.split(".", 1)[0]

    @property
    def user_id(self) -> Optional[str]:
        uid = self.payload.get("user_id")
        return str(uid) if uid is not None else None
