from __future__ import annotations

from typing import Any, Dict, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from sessionkeeper.core.errors import ConfigError


DEFAULT_TIMEOUT_MS = 5 * 60 * 1000
DEFAULT_WARNING_MS = 30 * 1000


def validate_durations(timeout_ms: Any, warning_ms: Any) -> None:
    """
    Raises ConfigError unless 0 < warning_ms < timeout_ms.
    """
    try:
        t = float(timeout_ms)
        w = float(warning_ms)
    except (TypeError, ValueError) as e:
        raise ConfigError("Session durations must be numbers.", timeout_ms=timeout_ms, warning_ms=warning_ms) from e
    if t <= 0 or w <= 0:
        raise ConfigError("Session durations must be positive.", timeout_ms=t, warning_ms=w)
    if w >= t:
        raise ConfigError("Warning lead time must be shorter than the session timeout.", timeout_ms=t, warning_ms=w)


class SessionConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    timeout_ms: int = DEFAULT_TIMEOUT_MS
    warning_ms: int = DEFAULT_WARNING_MS
    show_warning: bool = True

    @model_validator(mode="after")
    def _ordered(self) -> "SessionConfig":
        validate_durations(self.timeout_ms, self.warning_ms)
        return self


class StorageConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    backend: Literal["json", "memory"] = "json"
    path: str = "data/storage.json"


class AuthConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    simulated_delay_ms: int = Field(default=1000, ge=0, le=60_000)


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    log_dir: str = "logs"
    level: str = "INFO"


class EventLogConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    enabled: bool = True
    path: str = "logs/events.jsonl"


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    config_version: int = Field(default=1, ge=1)
    session: SessionConfig = Field(default_factory=SessionConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    events: EventLogConfig = Field(default_factory=EventLogConfig)

    def redacted_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
