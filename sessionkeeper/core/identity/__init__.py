"""
Principal lifecycle: simulated user directory, remembered principal, and the
controller that ties sign-in/sign-out to the cache and session subsystems.
"""

from sessionkeeper.core.identity.controller import LOGOUT_NOTICE, AuthSessionController
from sessionkeeper.core.identity.directory import USERS_KEY, UserDirectory
from sessionkeeper.core.identity.models import AuthState, Credentials, Principal, RegisterData, UserRecord, avatar_url
from sessionkeeper.core.identity.passwords import hash_password, verify_password
from sessionkeeper.core.identity.principal_store import USER_KEY, PrincipalStore

__all__ = [
    "AuthSessionController",
    "AuthState",
    "Credentials",
    "LOGOUT_NOTICE",
    "Principal",
    "PrincipalStore",
    "RegisterData",
    "USERS_KEY",
    "USER_KEY",
    "UserDirectory",
    "UserRecord",
    "avatar_url",
    "hash_password",
    "verify_password",
]
