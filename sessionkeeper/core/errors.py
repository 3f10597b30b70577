from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict

from sessionkeeper.core.events.log import redact


class Severity(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class SessionKeeperError(Exception):
    code: str
    user_message: str
    severity: Severity = Severity.ERROR
    recoverable: bool = True
    context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.code)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "user_message": self.user_message,
            "severity": self.severity.value,
            "recoverable": bool(self.recoverable),
            "context": redact(self.context or {}),
        }


# ---- Core types ----
class ConfigError(SessionKeeperError):
    def __init__(self, user_message: str = "Configuration error.", **ctx: Any):
        super().__init__("config_error", user_message, severity=Severity.CRITICAL, recoverable=False, context=ctx)


class StorageError(SessionKeeperError):
    def __init__(self, user_message: str = "Storage error.", **ctx: Any):
        super().__init__("storage_error", user_message, severity=Severity.ERROR, recoverable=True, context=ctx)


class ValidationError(SessionKeeperError):
    def __init__(self, user_message: str = "Invalid request.", **ctx: Any):
        super().__init__("validation_error", user_message, severity=Severity.WARN, recoverable=False, context=ctx)


class StateTransitionError(SessionKeeperError):
    def __init__(self, user_message: str = "Internal state error.", **ctx: Any):
        super().__init__("state_transition_error", user_message, severity=Severity.ERROR, recoverable=True, context=ctx)


# ---- Credential errors ----
class AuthErrorCode(str, Enum):
    INVALID_CREDENTIALS = "invalid_credentials"
    EMAIL_ALREADY_IN_USE = "email_already_in_use"
    AUTH_IN_PROGRESS = "auth_in_progress"


class AuthError(SessionKeeperError):
    def __init__(self, code: AuthErrorCode, user_message: str, **ctx: Any):
        super().__init__(code.value, user_message, severity=Severity.WARN, recoverable=True, context=ctx)
        self.auth_code = code


class InvalidCredentialsError(AuthError):
    def __init__(self, user_message: str = "Email or password is incorrect.", **ctx: Any):
        super().__init__(AuthErrorCode.INVALID_CREDENTIALS, user_message, **ctx)


class EmailAlreadyInUseError(AuthError):
    def __init__(self, user_message: str = "Email has already been used.", **ctx: Any):
        super().__init__(AuthErrorCode.EMAIL_ALREADY_IN_USE, user_message, **ctx)


class AuthInProgressError(AuthError):
    def __init__(self, user_message: str = "Sign-in is already in progress.", **ctx: Any):
        super().__init__(AuthErrorCode.AUTH_IN_PROGRESS, user_message, **ctx)
