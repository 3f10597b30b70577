from __future__ import annotations

import logging
from typing import Callable, Optional

from sessionkeeper.core.clock import Scheduler, TimerHandle
from sessionkeeper.core.config.models import validate_durations
from sessionkeeper.core.session.models import ExpiryReason, TimerState


WarningCallback = Callable[[float], None]
ExpireCallback = Callable[[ExpiryReason], None]


class SessionTimer:
    """
    Warning/expiry schedule for one session, derived from the last-activity timestamp.

    States: ARMED -> WARNED -> FIRED, any -> DISARMED.

    At most one warning handle and one expiry handle are outstanding. Every (re)schedule
    bumps a generation counter; a callback whose generation is stale does nothing, which
    covers timer APIs that deliver after cancel().
    """

    def __init__(self, scheduler: Scheduler, *, logger: Optional[logging.Logger] = None):
        self.scheduler = scheduler
        self.logger = logger or logging.getLogger("sessionkeeper.session.timer")

        self._state = TimerState.DISARMED
        self._timeout_ms = 0
        self._warning_ms = 0
        self._show_warning = True
        self._last_activity_at = 0.0
        self._generation = 0
        self._warning_handle: Optional[TimerHandle] = None
        self._expiry_handle: Optional[TimerHandle] = None
        self._on_warning: Optional[WarningCallback] = None
        self._on_expire: Optional[ExpireCallback] = None

    # ---- queries ----
    @property
    def state(self) -> TimerState:
        return self._state

    @property
    def timeout_ms(self) -> int:
        return self._timeout_ms

    @property
    def warning_ms(self) -> int:
        return self._warning_ms

    @property
    def last_activity_at(self) -> float:
        return self._last_activity_at

    def is_active(self) -> bool:
        return self._state in (TimerState.ARMED, TimerState.WARNED)

    def remaining_ms(self) -> float:
        with self.scheduler.lock:
            if self._state in (TimerState.DISARMED, TimerState.FIRED):
                return 0.0
            elapsed = self.scheduler.now_ms() - self._last_activity_at
            return max(0.0, float(self._timeout_ms) - elapsed)

    # ---- transitions ----
    def arm(self, timeout_ms: int, warning_ms: int, on_warning: WarningCallback, on_expire: ExpireCallback, *, show_warning: bool = True) -> None:
        validate_durations(timeout_ms, warning_ms)
        with self.scheduler.lock:
            self._cancel_pending()
            self._timeout_ms = int(timeout_ms)
            self._warning_ms = int(warning_ms)
            self._show_warning = bool(show_warning)
            self._on_warning = on_warning
            self._on_expire = on_expire
            self._schedule()

    def reset(self) -> bool:
        """
        Re-arm with the same durations from now. Returns False when disarmed.
        """
        with self.scheduler.lock:
            if self._state == TimerState.DISARMED:
                return False
            self._cancel_pending()
            self._schedule()
            return True

    def disarm(self) -> None:
        with self.scheduler.lock:
            self._cancel_pending()
            self._generation += 1
            self._state = TimerState.DISARMED
            self._on_warning = None
            self._on_expire = None

    def fire_now(self, reason: ExpiryReason = ExpiryReason.TIMER) -> bool:
        """
        Deliver expiry immediately, superseding the pending schedule.
        Returns False if there was nothing to expire.
        """
        with self.scheduler.lock:
            if not self.is_active():
                return False
            self._cancel_pending()
            self._generation += 1
            return self._deliver_expiry(reason)

    # ---- internals ----
    def _schedule(self) -> None:
        self._generation += 1
        gen = self._generation
        self._last_activity_at = self.scheduler.now_ms()
        self._state = TimerState.ARMED
        if self._show_warning:
            self._warning_handle = self.scheduler.call_later(self._timeout_ms - self._warning_ms, lambda: self._warning_due(gen))
        self._expiry_handle = self.scheduler.call_later(self._timeout_ms, lambda: self._expiry_due(gen))

    def _cancel_pending(self) -> None:
        self.scheduler.cancel(self._warning_handle)
        self.scheduler.cancel(self._expiry_handle)
        self._warning_handle = None
        self._expiry_handle = None

    def _warning_due(self, gen: int) -> None:
        with self.scheduler.lock:
            if gen != self._generation or self._state != TimerState.ARMED:
                self.logger.debug("stale warning callback ignored (gen=%s current=%s)", gen, self._generation)
                return
            self._warning_handle = None
            self._state = TimerState.WARNED
            cb = self._on_warning
            remaining = self.remaining_ms()
        if cb is not None:
            cb(remaining)

    def _expiry_due(self, gen: int) -> None:
        with self.scheduler.lock:
            if gen != self._generation or not self.is_active():
                self.logger.debug("stale expiry callback ignored (gen=%s current=%s)", gen, self._generation)
                return
            self._expiry_handle = None
            self.scheduler.cancel(self._warning_handle)
            self._warning_handle = None
            self._deliver_expiry(ExpiryReason.TIMER)

    def _deliver_expiry(self, reason: ExpiryReason) -> bool:
        self._state = TimerState.FIRED
        cb = self._on_expire
        if cb is not None:
            cb(reason)
        return True
