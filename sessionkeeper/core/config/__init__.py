from __future__ import annotations

import os
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from sessionkeeper.core.config.io import read_json_file
from sessionkeeper.core.config.models import AppConfig, AuthConfig, EventLogConfig, LoggingConfig, SessionConfig, StorageConfig, validate_durations
from sessionkeeper.core.errors import ConfigError

ENV_TIMEOUT_MS = "SESSIONKEEPER_TIMEOUT_MS"
ENV_WARNING_MS = "SESSIONKEEPER_WARNING_MS"

__all__ = [
    "AppConfig",
    "AuthConfig",
    "EventLogConfig",
    "LoggingConfig",
    "SessionConfig",
    "StorageConfig",
    "load_config",
    "validate_durations",
]


def _env_overrides(raw: Dict[str, Any], environ: Mapping[str, str]) -> Dict[str, Any]:
    session = dict(raw.get("session") or {})
    for env_key, field in ((ENV_TIMEOUT_MS, "timeout_ms"), (ENV_WARNING_MS, "warning_ms")):
        v = environ.get(env_key)
        if v is None or not str(v).strip():
            continue
        try:
            session[field] = int(str(v).strip())
        except ValueError as e:
            raise ConfigError(f"{env_key} must be an integer.", value=v) from e
    if session:
        raw = {**raw, "session": session}
    return raw


def load_config(path: Optional[str] = None, *, environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    """
    Load app config from a JSON object file. Missing file means defaults.
    Corrupt or invalid files fail fast with ConfigError.
    """
    raw: Dict[str, Any] = {}
    if path:
        res = read_json_file(path)
        if res.ok:
            raw = res.data
        elif res.error != "missing":
            raise ConfigError("Config file could not be read.", path=path, error=res.error)
    raw = _env_overrides(raw, os.environ if environ is None else environ)
    try:
        return AppConfig.model_validate(raw)
    except ConfigError:
        raise
    except PydanticValidationError as e:
        raise ConfigError("Config file is invalid.", path=path, errors=str(e)[:500]) from e
