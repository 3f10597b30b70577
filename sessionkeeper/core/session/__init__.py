"""
Inactivity session lifecycle: activity signals, warning/expiry timer, visibility
reconciliation, and the orchestrator that composes them.
"""

from sessionkeeper.core.session.activity import ACTIVITY_SIGNALS, VISIBILITY_CHANGE, ActivityMonitor, ActivitySignal, Signal, SignalHub
from sessionkeeper.core.session.models import ExpiryReason, ReconcileOutcome, Session, SessionStatus, TimerState
from sessionkeeper.core.session.orchestrator import EXPIRED_NOTICE, SessionOrchestrator, warning_notice
from sessionkeeper.core.session.timer import SessionTimer
from sessionkeeper.core.session.visibility import VisibilityReconciler

__all__ = [
    "ACTIVITY_SIGNALS",
    "VISIBILITY_CHANGE",
    "ActivityMonitor",
    "ActivitySignal",
    "EXPIRED_NOTICE",
    "ExpiryReason",
    "ReconcileOutcome",
    "Session",
    "SessionOrchestrator",
    "SessionStatus",
    "SessionTimer",
    "Signal",
    "SignalHub",
    "TimerState",
    "VisibilityReconciler",
    "warning_notice",
]
