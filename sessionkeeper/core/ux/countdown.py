from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from sessionkeeper.core.session.orchestrator import SessionOrchestrator

CRITICAL_MS = 30 * 1000
CAUTION_MS = 60 * 1000
NOTICE_MS = 2 * 60 * 1000


def format_remaining(ms: float) -> str:
    total = max(0, int(float(ms or 0) // 1000))
    return f"{total // 60}:{total % 60:02d}"


def urgency(ms: float) -> str:
    ms = float(ms or 0)
    if ms <= CRITICAL_MS:
        return "critical"
    if ms <= CAUTION_MS:
        return "caution"
    if ms <= NOTICE_MS:
        return "notice"
    return "ok"


def should_offer_extend(ms: float) -> bool:
    return 0 < float(ms or 0) <= NOTICE_MS


class CountdownView:
    """
    Read-only countdown for a polling display (e.g. once per second).
    Hidden while signed out or when no session timer is running.
    """

    def __init__(
        self,
        orchestrator: SessionOrchestrator,
        *,
        is_authenticated: Optional[Callable[[], bool]] = None,
        only_within_ms: Optional[float] = None,
    ):
        self.orchestrator = orchestrator
        self.is_authenticated = is_authenticated or orchestrator.is_active
        self.only_within_ms = only_within_ms

    def snapshot(self) -> Dict[str, Any]:
        remaining = self.orchestrator.get_remaining_time() if self.is_authenticated() else 0.0
        visible = remaining > 0
        if visible and self.only_within_ms is not None:
            visible = remaining <= float(self.only_within_ms)
        return {
            "visible": visible,
            "remaining_ms": remaining,
            "text": format_remaining(remaining),
            "urgency": urgency(remaining),
            "offer_extend": visible and should_offer_extend(remaining),
        }

    def extend(self) -> bool:
        return self.orchestrator.reset_timer()
