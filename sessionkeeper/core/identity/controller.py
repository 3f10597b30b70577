from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, Dict, Optional, Union

from sessionkeeper.core.cache.coordinator import MultiTenantCacheCoordinator
from sessionkeeper.core.clock import Scheduler, TimerHandle
from sessionkeeper.core.config.models import AuthConfig
from sessionkeeper.core.errors import AuthError, AuthInProgressError, InvalidCredentialsError, StateTransitionError
from sessionkeeper.core.events.bus import EventBus
from sessionkeeper.core.events.models import BaseEvent, EventSeverity, SourceSubsystem
from sessionkeeper.core.identity.directory import UserDirectory
from sessionkeeper.core.identity.models import AuthState, Credentials, Principal, RegisterData
from sessionkeeper.core.identity.principal_store import PrincipalStore
from sessionkeeper.core.session.orchestrator import EXPIRED_NOTICE, SessionOrchestrator

LOGOUT_NOTICE = "Logout successful!"


class AuthSessionController:
    """
    Authenticated-principal state machine.

    ANONYMOUS -> AUTHENTICATING -> AUTHENTICATED -> ANONYMOUS
    AUTHENTICATING -> ERROR -> AUTHENTICATING (retry) | ANONYMOUS (clear_error)

    Entering AUTHENTICATED attaches the user's caches, then enables the inactivity
    session. Leaving it disables the session first, then detaches the caches.
    """

    def __init__(
        self,
        *,
        directory: UserDirectory,
        principals: PrincipalStore,
        caches: MultiTenantCacheCoordinator,
        orchestrator: SessionOrchestrator,
        scheduler: Scheduler,
        bus: EventBus,
        cfg: Optional[AuthConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.directory = directory
        self.principals = principals
        self.caches = caches
        self.orchestrator = orchestrator
        self.scheduler = scheduler
        self.bus = bus
        self.cfg = cfg or AuthConfig()
        self.logger = logger or logging.getLogger("sessionkeeper.auth")

        self._state = AuthState.ANONYMOUS
        self._principal: Optional[Principal] = None
        self._error: Optional[AuthError] = None
        self._attempt: Optional[str] = None
        self._pending: Optional[TimerHandle] = None
        self._last_logout_expired = False
        self._last_notice: Optional[str] = None

        self._unsubscribe_expired = self.bus.subscribe("session.expired", self._on_session_expired, priority=10)

    # ---- queries ----
    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def principal(self) -> Optional[Principal]:
        return self._principal

    @property
    def error(self) -> Optional[AuthError]:
        return self._error

    @property
    def last_notice(self) -> Optional[str]:
        return self._last_notice

    @property
    def expired_due_to_inactivity(self) -> bool:
        return self._last_logout_expired

    def is_authenticated(self) -> bool:
        return self._state == AuthState.AUTHENTICATED and self._principal is not None

    def active_user_id(self) -> Optional[str]:
        return self._principal.id if self._principal is not None else None

    # ---- operations ----
    def login(self, credentials: Union[Credentials, Dict[str, Any]]) -> str:
        creds = credentials if isinstance(credentials, Credentials) else Credentials.model_validate(credentials)
        return self._begin("login", lambda: self._complete_login(creds))

    def register(self, data: Union[RegisterData, Dict[str, Any]]) -> str:
        reg = data if isinstance(data, RegisterData) else RegisterData.model_validate(data)
        return self._begin("register", lambda: self._complete_register(reg))

    def logout(self, *, expired_due_to_inactivity: bool = False) -> bool:
        with self.scheduler.lock:
            if self._state == AuthState.AUTHENTICATING:
                self._cancel_pending()
                self._set_state(AuthState.ANONYMOUS)
                return False
            if self._state != AuthState.AUTHENTICATED or self._principal is None:
                return False
            uid = self._principal.id
            # session first: no activity may re-arm a timer for a principal being removed
            self.orchestrator.disable()
            self.caches.switch_user(uid, None)
            self.principals.clear()
            self._principal = None
            self._error = None
            self._last_logout_expired = bool(expired_due_to_inactivity)
            self._last_notice = EXPIRED_NOTICE if expired_due_to_inactivity else LOGOUT_NOTICE
            self._set_state(AuthState.ANONYMOUS)
            self.logger.info("user %s signed out (expired=%s)", uid, bool(expired_due_to_inactivity))
            self._publish(
                "auth.logged_out",
                {"user_id": uid, "expired_due_to_inactivity": bool(expired_due_to_inactivity), "notice": self._last_notice},
                severity=EventSeverity.WARN if expired_due_to_inactivity else EventSeverity.INFO,
            )
            return True

    def initialize_from_persisted_principal(self) -> Optional[Principal]:
        """
        Trust-the-device restore: a remembered principal is signed straight back in.
        """
        with self.scheduler.lock:
            if self._state != AuthState.ANONYMOUS:
                return self._principal
            p = self.principals.load()
            if p is None:
                self.caches.switch_user(None, None)
                return None
            self._establish(p, "auth.restored")
            return p

    def clear_error(self) -> None:
        with self.scheduler.lock:
            if self._state == AuthState.ERROR:
                self._error = None
                self._set_state(AuthState.ANONYMOUS)

    def update_profile(self, *, name: Optional[str] = None, email: Optional[str] = None) -> Principal:
        with self.scheduler.lock:
            if not self.is_authenticated():
                raise StateTransitionError("Sign in to update your profile.")
            updated = self.directory.update_profile(self._principal.id, name=name, email=email)
            if updated is None:
                # directory lost the record; keep the session, edit the remembered principal only
                changes: Dict[str, Any] = {}
                if name and name.strip():
                    changes["name"] = name.strip()
                updated = self._principal.model_copy(update=changes)
            self._principal = updated
            self.principals.save(updated)
            self._publish("auth.profile.updated", {"user_id": updated.id})
            return updated

    def delete_account(self) -> bool:
        with self.scheduler.lock:
            if not self.is_authenticated():
                return False
            uid = self._principal.id
            self.logout()
            for c in self.caches.collections:
                c.store.clear_durable(uid)
            self.directory.delete(uid)
            self._publish("auth.account.deleted", {"user_id": uid})
            return True

    def shutdown(self) -> None:
        """
        Detach from the runtime: drop any pending sign-in completion and stop the
        inactivity timers. A remembered principal stays remembered.
        """
        with self.scheduler.lock:
            if self._state == AuthState.AUTHENTICATING:
                self._cancel_pending()
                self._set_state(AuthState.ANONYMOUS)
            self.orchestrator.disable()
            self._unsubscribe_expired()

    # ---- internals ----
    def _begin(self, kind: str, complete: Callable[[], None]) -> str:
        with self.scheduler.lock:
            if self._state == AuthState.AUTHENTICATING:
                raise AuthInProgressError()
            if self._state == AuthState.AUTHENTICATED:
                raise StateTransitionError("Already signed in.", operation=kind)
            attempt = uuid.uuid4().hex
            self._attempt = attempt
            self._error = None
            self._set_state(AuthState.AUTHENTICATING)

            def _deliver() -> None:
                with self.scheduler.lock:
                    if self._attempt != attempt or self._state != AuthState.AUTHENTICATING:
                        self.logger.debug("stale %s completion ignored", kind)
                        return
                    self._pending = None
                    complete()

            delay = int(self.cfg.simulated_delay_ms)
            if delay <= 0:
                _deliver()
            else:
                self._pending = self.scheduler.call_later(delay, _deliver)
            return attempt

    def _complete_login(self, creds: Credentials) -> None:
        principal = self.directory.verify(creds)
        if principal is None:
            self._fail(InvalidCredentialsError(), "auth.login.failed")
            return
        self._establish(principal, "auth.login.succeeded")

    def _complete_register(self, data: RegisterData) -> None:
        try:
            principal = self.directory.register(data)
        except AuthError as e:
            self._fail(e, "auth.register.failed")
            return
        self._establish(principal, "auth.registered")

    def _establish(self, principal: Principal, event_type: str) -> None:
        self._principal = principal
        self._error = None
        self._last_logout_expired = False
        self._last_notice = f"Welcome {principal.name}!"
        self.principals.save(principal)
        self.caches.switch_user(None, principal.id)
        self.orchestrator.enable()
        self._set_state(AuthState.AUTHENTICATED)
        self.logger.info("user %s signed in (%s)", principal.id, event_type)
        self._publish(event_type, {"user_id": principal.id})

    def _fail(self, err: AuthError, event_type: str) -> None:
        self._principal = None
        self._error = err
        self._last_notice = err.user_message
        self._set_state(AuthState.ERROR)
        self.logger.info("%s: %s", event_type, err.code)
        self._publish(event_type, {"code": err.code, "user_message": err.user_message}, severity=EventSeverity.WARN)

    def _cancel_pending(self) -> None:
        self.scheduler.cancel(self._pending)
        self._pending = None
        self._attempt = None

    def _on_session_expired(self, _ev: BaseEvent) -> None:
        with self.scheduler.lock:
            if self._state != AuthState.AUTHENTICATED:
                return
            self.logout(expired_due_to_inactivity=True)

    def _set_state(self, new_state: AuthState) -> None:
        old = self._state
        self._state = new_state
        if old != new_state:
            self._publish("auth.state", {"from": old.value, "to": new_state.value})

    def _publish(self, event_type: str, payload: Dict[str, Any], *, severity: EventSeverity = EventSeverity.INFO) -> None:
        self.bus.publish(
            BaseEvent(
                event_type=event_type,
                trace_id=self._attempt,
                source_subsystem=SourceSubsystem.auth,
                severity=severity,
                payload=payload,
            )
        )
