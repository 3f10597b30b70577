from __future__ import annotations

import collections
import threading
from typing import Any, Dict

from sessionkeeper.core.events.models import BaseEvent

SIGN_IN_EVENTS = frozenset({"auth.login.succeeded", "auth.registered", "auth.restored"})
SIGN_IN_FAILURES = frozenset({"auth.login.failed", "auth.register.failed"})


class LifecycleTally:
    """
    Running counts of what the bus has carried: totals, per event type, per subsystem,
    and the session/auth lifecycle (warnings, expiries by reason, sign-ins, sign-outs).
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._published = 0
        self._delivered = 0
        self._handler_errors = 0
        self._per_type: collections.Counter = collections.Counter()
        self._per_subsystem: collections.Counter = collections.Counter()
        self._expiries: collections.Counter = collections.Counter()
        self._sign_ins = 0
        self._sign_in_failures = 0
        self._sign_outs = 0
        self._inactivity_sign_outs = 0
        self._warnings = 0

    def record(self, ev: BaseEvent) -> None:
        et = ev.event_type
        with self._lock:
            self._published += 1
            self._per_type[et] += 1
            self._per_subsystem[ev.source_subsystem.value] += 1
            if et == "session.warning":
                self._warnings += 1
            elif et == "session.expired":
                self._expiries[str(ev.payload.get("reason") or "unknown")] += 1
            elif et in SIGN_IN_EVENTS:
                self._sign_ins += 1
            elif et in SIGN_IN_FAILURES:
                self._sign_in_failures += 1
            elif et == "auth.logged_out":
                self._sign_outs += 1
                if ev.payload.get("expired_due_to_inactivity"):
                    self._inactivity_sign_outs += 1

    def delivered(self, n: int) -> None:
        with self._lock:
            self._delivered += int(n)

    def handler_failed(self) -> None:
        with self._lock:
            self._handler_errors += 1

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "published_total": self._published,
                "delivered_total": self._delivered,
                "handler_errors_total": self._handler_errors,
                "per_type_published": dict(self._per_type),
                "per_subsystem": dict(self._per_subsystem),
                "lifecycle": {
                    "warnings": self._warnings,
                    "expiries": dict(self._expiries),
                    "sign_ins": self._sign_ins,
                    "sign_in_failures": self._sign_in_failures,
                    "sign_outs": self._sign_outs,
                    "inactivity_sign_outs": self._inactivity_sign_outs,
                },
            }
