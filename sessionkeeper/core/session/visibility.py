from __future__ import annotations

import logging
from typing import Callable, Optional

from sessionkeeper.core.clock import Scheduler
from sessionkeeper.core.session.activity import VISIBILITY_CHANGE, Signal, SignalHub
from sessionkeeper.core.session.models import ExpiryReason, ReconcileOutcome
from sessionkeeper.core.session.timer import SessionTimer


class VisibilityReconciler:
    """
    Reconciles time spent hidden against the session timeout.

    Timers of a hidden runtime may be throttled or suspended, so on show the elapsed
    away time decides: at or past the timeout the session expires immediately;
    otherwise the timer is fully reset (returning counts as fresh activity) and
    `on_resume` is told, so the owner can drop any warning it is showing.
    """

    def __init__(
        self,
        timer: SessionTimer,
        scheduler: Scheduler,
        *,
        on_resume: Optional[Callable[[], None]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.timer = timer
        self.scheduler = scheduler
        self.on_resume = on_resume
        self.logger = logger or logging.getLogger("sessionkeeper.session.visibility")
        self._hub: Optional[SignalHub] = None
        self._hidden_at: Optional[float] = None

    @property
    def hidden_at(self) -> Optional[float]:
        return self._hidden_at

    def attach(self, hub: SignalHub) -> None:
        if self._hub is not None:
            self.detach()
        self._hub = hub
        hub.add_listener(VISIBILITY_CHANGE, self._handle)

    def detach(self) -> None:
        if self._hub is not None:
            self._hub.remove_listener(VISIBILITY_CHANGE, self._handle)
        self._hub = None
        self._hidden_at = None

    def is_attached(self) -> bool:
        return self._hub is not None

    def on_hide(self) -> None:
        with self.scheduler.lock:
            self._hidden_at = self.scheduler.now_ms()

    def on_show(self) -> ReconcileOutcome:
        with self.scheduler.lock:
            if self._hidden_at is None:
                return ReconcileOutcome.NOOP
            away_ms = self.scheduler.now_ms() - self._hidden_at
            self._hidden_at = None
            if not self.timer.is_active():
                return ReconcileOutcome.NOOP
            if away_ms >= self.timer.timeout_ms:
                self.logger.info("away %.0f ms >= timeout %s ms; expiring session", away_ms, self.timer.timeout_ms)
                self.timer.fire_now(ExpiryReason.VISIBILITY)
                return ReconcileOutcome.EXPIRED
            self.timer.reset()
            if self.on_resume is not None:
                self.on_resume()
            return ReconcileOutcome.RESUMED

    def _handle(self, signal: Signal) -> None:
        if bool(signal.detail.get("hidden")):
            self.on_hide()
        else:
            self.on_show()
