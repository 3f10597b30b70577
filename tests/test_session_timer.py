from __future__ import annotations

import pytest

from sessionkeeper.core.clock import ManualScheduler
from sessionkeeper.core.errors import ConfigError
from sessionkeeper.core.session.models import ExpiryReason, TimerState
from sessionkeeper.core.session.timer import SessionTimer


def _armed(timeout_ms=300_000, warning_ms=30_000, show_warning=True):
    s = ManualScheduler(start_ms=0)
    t = SessionTimer(s)
    calls = []
    t.arm(
        timeout_ms,
        warning_ms,
        lambda remaining: calls.append(("warning", s.now_ms(), remaining)),
        lambda reason: calls.append(("expired", s.now_ms(), reason)),
        show_warning=show_warning,
    )
    return s, t, calls


@pytest.mark.parametrize("timeout_ms,warning_ms", [(300_000, 30_000), (1_000, 999), (60_000, 1)])
def test_warning_and_expiry_fire_at_exact_thresholds(timeout_ms, warning_ms):
    s, t, calls = _armed(timeout_ms, warning_ms)
    s.advance(timeout_ms - warning_ms - 1)
    assert calls == []
    s.advance(1)
    assert calls == [("warning", float(timeout_ms - warning_ms), float(warning_ms))]
    assert t.state == TimerState.WARNED
    s.advance(warning_ms - 1)
    assert len(calls) == 1
    s.advance(1)
    assert calls[1] == ("expired", float(timeout_ms), ExpiryReason.TIMER)
    assert t.state == TimerState.FIRED
    assert t.is_active() is False
    assert t.remaining_ms() == 0.0


def test_reset_postpones_both_thresholds():
    s, t, calls = _armed()
    s.advance(100_000)
    assert t.reset() is True
    assert t.last_activity_at == 100_000
    s.advance(269_999)
    assert calls == []
    s.advance(1)
    assert calls[0][:2] == ("warning", 370_000.0)
    s.advance(30_000)
    assert calls[1][:2] == ("expired", 400_000.0)


def test_reset_after_warning_returns_to_armed_without_stale_expiry():
    s, t, calls = _armed()
    s.advance(280_000)
    assert t.state == TimerState.WARNED
    t.reset()
    assert t.state == TimerState.ARMED
    # the pre-reset expiry deadline (300_000) passes without delivery
    s.advance(30_000)
    assert [c[0] for c in calls] == ["warning"]
    s.advance(300_000)
    assert [c[0] for c in calls] == ["warning", "warning", "expired"]


def test_at_most_one_pending_handle_per_schedule():
    s, t, _calls = _armed()
    for _ in range(5):
        s.advance(1_000)
        t.reset()
    assert s.pending() == 2


def test_show_warning_false_only_expires():
    s, t, calls = _armed(show_warning=False)
    assert s.pending() == 1
    s.advance(300_000)
    assert [c[0] for c in calls] == ["expired"]


def test_disarm_cancels_everything_and_reset_is_noop():
    s, t, calls = _armed()
    t.disarm()
    assert t.state == TimerState.DISARMED
    assert t.reset() is False
    assert s.pending() == 0
    s.advance(1_000_000)
    assert calls == []
    assert t.remaining_ms() == 0.0


def test_remaining_ms_counts_down():
    s, t, _calls = _armed()
    s.advance(120_000)
    assert t.remaining_ms() == 180_000.0


def test_fire_now_delivers_once():
    s, t, calls = _armed()
    assert t.fire_now(ExpiryReason.VISIBILITY) is True
    assert t.fire_now() is False
    s.advance(1_000_000)
    assert calls == [("expired", 0.0, ExpiryReason.VISIBILITY)]


def test_stale_callback_after_cancel_is_ignored():
    s = ManualScheduler(start_ms=0)
    t = SessionTimer(s)
    calls = []
    t.arm(1_000, 100, lambda r: calls.append("w"), lambda r: calls.append("e"))
    # a timer API that still delivers a cancelled callback
    stale_gen = t._generation
    t.reset()
    t._expiry_due(stale_gen)
    t._warning_due(stale_gen)
    assert calls == []


def test_arm_rejects_bad_durations():
    t = SessionTimer(ManualScheduler())
    with pytest.raises(ConfigError):
        t.arm(1_000, 1_000, lambda r: None, lambda r: None)
    assert t.state == TimerState.DISARMED
