from __future__ import annotations

import logging
import uuid
from typing import Callable, Optional

from sessionkeeper.core.clock import Scheduler
from sessionkeeper.core.config.models import SessionConfig, validate_durations
from sessionkeeper.core.events.bus import EventBus
from sessionkeeper.core.events.models import BaseEvent, EventSeverity, SourceSubsystem
from sessionkeeper.core.session.activity import ActivityMonitor, SignalHub
from sessionkeeper.core.session.models import ExpiryReason, Session, SessionStatus
from sessionkeeper.core.session.timer import SessionTimer
from sessionkeeper.core.session.visibility import VisibilityReconciler


def warning_notice(warning_ms: int) -> str:
    return f"You will be logged out in {int(warning_ms) // 1000} seconds due to inactivity."


EXPIRED_NOTICE = "You have been automatically logged out due to inactivity."


class SessionOrchestrator:
    """
    One enable/disable-able inactivity session: ActivityMonitor -> SessionTimer.reset,
    VisibilityReconciler on the same hub, Warning/Expired published on the event bus.

    Exactly one `session.expired` per enable(). Status reads EXPIRED while that event is
    delivered, then DISABLED; activity is ignored until enabled again.
    """

    def __init__(
        self,
        *,
        scheduler: Scheduler,
        hub: SignalHub,
        bus: Optional[EventBus] = None,
        cfg: Optional[SessionConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.scheduler = scheduler
        self.hub = hub
        self.bus = bus or EventBus()
        self.cfg = cfg or SessionConfig()
        self.logger = logger or logging.getLogger("sessionkeeper.session")

        self.timer = SessionTimer(scheduler, logger=self.logger)
        self.monitor = ActivityMonitor(hub, logger=self.logger)
        self.reconciler = VisibilityReconciler(self.timer, scheduler, on_resume=self._on_resume, logger=self.logger)

        self._enabled = False
        self._status = SessionStatus.DISABLED
        self._session_id: Optional[str] = None

    # ---- lifecycle ----
    def enable(self, timeout_ms: Optional[int] = None, warning_ms: Optional[int] = None, *, show_warning: Optional[bool] = None) -> str:
        timeout = int(self.cfg.timeout_ms if timeout_ms is None else timeout_ms)
        warning = int(self.cfg.warning_ms if warning_ms is None else warning_ms)
        validate_durations(timeout, warning)
        with self.scheduler.lock:
            if self._enabled:
                self.disable()
            self._session_id = uuid.uuid4().hex
            self._enabled = True
            self._status = SessionStatus.ACTIVE
            self.monitor.start(self._on_activity)
            self.timer.arm(
                timeout,
                warning,
                self._on_warning,
                self._on_expire,
                show_warning=self.cfg.show_warning if show_warning is None else bool(show_warning),
            )
            self.reconciler.attach(self.hub)
            self.logger.info("session %s enabled (timeout=%sms warning=%sms)", self._session_id, timeout, warning)
            self._publish("session.enabled", {"timeout_ms": timeout, "warning_ms": warning})
            return self._session_id

    def disable(self) -> bool:
        with self.scheduler.lock:
            if not self._enabled:
                return False
            self._teardown()
            self._status = SessionStatus.DISABLED
            self.logger.info("session %s disabled", self._session_id)
            self._publish("session.disabled", {})
            return True

    # ---- public surface ----
    def reset_timer(self) -> bool:
        """
        Manual "stay signed in": same effect as fresh activity.
        """
        with self.scheduler.lock:
            if not self._enabled:
                return False
            self.timer.reset()
            self._status = SessionStatus.ACTIVE
            self._publish("session.reset", {"source": "manual"})
            return True

    def get_remaining_time(self) -> float:
        with self.scheduler.lock:
            if not self._enabled:
                return 0.0
            return self.timer.remaining_ms()

    def get_last_activity(self) -> float:
        return self.timer.last_activity_at

    def is_timer_active(self) -> bool:
        with self.scheduler.lock:
            return self._enabled and self.timer.is_active()

    def is_active(self) -> bool:
        return self._enabled

    def session(self) -> Session:
        with self.scheduler.lock:
            return Session(
                session_id=self._session_id,
                status=self._status,
                last_activity_at=self.timer.last_activity_at,
                timeout_ms=self.timer.timeout_ms or self.cfg.timeout_ms,
                warning_ms=self.timer.warning_ms or self.cfg.warning_ms,
            )

    def on_warning(self, handler: Callable[[float], None]) -> Callable[[], None]:
        def _adapter(ev: BaseEvent) -> None:
            handler(float(ev.payload.get("remaining_ms", 0.0)))

        return self.bus.subscribe("session.warning", _adapter)

    def on_expired(self, handler: Callable[[], None]) -> Callable[[], None]:
        def _adapter(_ev: BaseEvent) -> None:
            handler()

        return self.bus.subscribe("session.expired", _adapter)

    # ---- callbacks (run under scheduler.lock) ----
    def _on_activity(self) -> None:
        with self.scheduler.lock:
            if not self._enabled:
                return
            self.timer.reset()
            self._status = SessionStatus.ACTIVE

    def _on_resume(self) -> None:
        if not self._enabled:
            return
        self._status = SessionStatus.ACTIVE
        self._publish("session.reset", {"source": "visibility"})

    def _on_warning(self, remaining_ms: float) -> None:
        if not self._enabled:
            return
        self._status = SessionStatus.WARNING
        self._publish(
            "session.warning",
            {"remaining_ms": remaining_ms, "notice": warning_notice(self.timer.warning_ms)},
            severity=EventSeverity.WARN,
        )

    def _on_expire(self, reason: ExpiryReason) -> None:
        if not self._enabled:
            return
        self._teardown()
        self._status = SessionStatus.EXPIRED
        self.logger.info("session %s expired (%s)", self._session_id, reason.value)
        self._publish("session.expired", {"reason": reason.value, "notice": EXPIRED_NOTICE}, severity=EventSeverity.WARN)
        # handlers may have enabled a new session already
        if not self._enabled:
            self._status = SessionStatus.DISABLED

    def _teardown(self) -> None:
        self._enabled = False
        self.monitor.stop()
        self.reconciler.detach()
        self.timer.disarm()

    def _publish(self, event_type: str, payload: dict, *, severity: EventSeverity = EventSeverity.INFO) -> None:
        self.bus.publish(
            BaseEvent(
                event_type=event_type,
                trace_id=self._session_id,
                source_subsystem=SourceSubsystem.session,
                severity=severity,
                payload=payload,
            )
        )
