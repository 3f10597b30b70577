from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class TimerState(str, Enum):
    ARMED = "ARMED"
    WARNED = "WARNED"
    FIRED = "FIRED"
    DISARMED = "DISARMED"


class SessionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    WARNING = "WARNING"
    EXPIRED = "EXPIRED"
    DISABLED = "DISABLED"


class ExpiryReason(str, Enum):
    TIMER = "timer"
    VISIBILITY = "visibility"


class ReconcileOutcome(str, Enum):
    NOOP = "NOOP"
    RESUMED = "RESUMED"
    EXPIRED = "EXPIRED"


class Session(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    session_id: Optional[str] = None
    status: SessionStatus = SessionStatus.DISABLED
    last_activity_at: float = 0.0
    timeout_ms: int
    warning_ms: int
