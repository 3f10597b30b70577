from __future__ import annotations

import json

import pytest

from sessionkeeper.core.assembly import build_core
from sessionkeeper.core.errors import AuthErrorCode, AuthInProgressError, StateTransitionError
from sessionkeeper.core.identity.controller import LOGOUT_NOTICE
from sessionkeeper.core.identity.models import AuthState
from sessionkeeper.core.session.orchestrator import EXPIRED_NOTICE
from tests.helpers.config_builders import build_app_config

ADA = {"name": "Ada", "email": "ada@example.com", "password": "pw-ada"}


def _register(core, data=ADA):
    core.auth.register(data)
    assert core.auth.state == AuthState.AUTHENTICATED
    return core.auth.principal


def test_register_signs_in_and_wires_subsystems(core, core_events, kv):
    p = _register(core)
    assert core.auth.is_authenticated()
    assert core.auth.last_notice == "Welcome Ada!"
    assert core.caches.active_user_id() == p.id
    assert core.orchestrator.is_timer_active()
    assert json.loads(kv.get("user"))["id"] == p.id
    assert "password" not in kv.get("user").lower()
    types = core_events.types()
    assert types.index("cache.attached") < types.index("session.enabled") < types.index("auth.registered")
    assert core_events.of("auth.state")[-1].payload == {"from": "AUTHENTICATING", "to": "AUTHENTICATED"}


def test_wrong_password_goes_to_error_then_retry(core, core_events):
    _register(core)
    core.auth.logout()
    core.auth.login({"email": "ada@example.com", "password": "nope"})
    assert core.auth.state == AuthState.ERROR
    assert core.auth.error.auth_code == AuthErrorCode.INVALID_CREDENTIALS
    assert core.auth.principal is None
    assert core.caches.active_user_id() is None
    assert core.orchestrator.is_timer_active() is False
    failed = core_events.of("auth.login.failed")[0]
    assert failed.payload == {"code": "invalid_credentials", "user_message": "Email or password is incorrect."}
    core.auth.login({"email": "ada@example.com", "password": "pw-ada"})
    assert core.auth.state == AuthState.AUTHENTICATED
    assert core.auth.error is None


def test_clear_error_returns_to_anonymous(core):
    core.auth.login({"email": "ghost@example.com", "password": "x"})
    assert core.auth.state == AuthState.ERROR
    core.auth.clear_error()
    assert core.auth.state == AuthState.ANONYMOUS
    assert core.auth.error is None


def test_register_duplicate_email_fails(core, core_events):
    _register(core)
    core.auth.logout()
    core.auth.register({"name": "Other", "email": "ADA@example.com", "password": "x"})
    assert core.auth.state == AuthState.ERROR
    assert core.auth.error.auth_code == AuthErrorCode.EMAIL_ALREADY_IN_USE
    assert core_events.of("auth.register.failed")[0].payload["user_message"] == "Email has already been used."


def test_login_while_authenticated_rejected(core):
    _register(core)
    with pytest.raises(StateTransitionError):
        core.auth.login({"email": "ada@example.com", "password": "pw-ada"})
    with pytest.raises(StateTransitionError):
        core.auth.register({"name": "B", "email": "b@example.com", "password": "x"})


def test_deferred_sign_in_and_in_progress_guard(scheduler, kv):
    c = build_core(build_app_config(simulated_delay_ms=1_000), scheduler=scheduler, kv=kv)
    c.auth.register(ADA)
    assert c.auth.state == AuthState.AUTHENTICATING
    with pytest.raises(AuthInProgressError):
        c.auth.login({"email": "ada@example.com", "password": "pw-ada"})
    scheduler.advance(999)
    assert c.auth.state == AuthState.AUTHENTICATING
    scheduler.advance(1)
    assert c.auth.state == AuthState.AUTHENTICATED
    c.auth.shutdown()


def test_logout_cancels_pending_sign_in(scheduler, kv):
    c = build_core(build_app_config(simulated_delay_ms=1_000), scheduler=scheduler, kv=kv)
    c.auth.register(ADA)
    assert c.auth.logout() is False
    assert c.auth.state == AuthState.ANONYMOUS
    scheduler.advance(5_000)
    assert c.auth.state == AuthState.ANONYMOUS
    assert c.directory.list_users() == []
    assert c.orchestrator.is_active() is False


def test_logout_disables_session_before_detaching_caches(core, core_events, kv):
    p = _register(core)
    core.cart.add_item(p.id, "p1", "M")
    core_events.clear()
    assert core.auth.logout() is True
    types = core_events.types()
    assert types.index("session.disabled") < types.index("cache.detached") < types.index("auth.logged_out")
    assert core_events.of("auth.logged_out")[0].payload == {"user_id": p.id, "expired_due_to_inactivity": False, "notice": LOGOUT_NOTICE}
    assert core.auth.state == AuthState.ANONYMOUS
    assert core.auth.expired_due_to_inactivity is False
    assert core.orchestrator.is_timer_active() is False
    assert core.cart.items() == {} and core.orders.orders() == []
    assert kv.get("user") is None
    assert json.loads(kv.get(f"cart_{p.id}")) == {"p1": {"M": 1}}
    assert core.auth.logout() is False


def test_inactivity_expiry_logs_out_once(core, core_events, scheduler, kv):
    p = _register(core)
    core.cart.add_item(p.id, "p1", "M")
    scheduler.advance(270_000)
    assert len(core_events.of("session.warning")) == 1
    scheduler.advance(30_000)
    assert core.auth.state == AuthState.ANONYMOUS
    assert core.auth.expired_due_to_inactivity is True
    assert core.auth.last_notice == EXPIRED_NOTICE
    logged_out = core_events.of("auth.logged_out")
    assert len(logged_out) == 1 and logged_out[0].payload["expired_due_to_inactivity"] is True
    assert len(core_events.of("session.expired")) == 1
    assert kv.get("user") is None
    assert core.cart.items() == {}
    assert json.loads(kv.get(f"cart_{p.id}")) == {"p1": {"M": 1}}
    scheduler.advance(1_000_000)
    assert len(core_events.of("auth.logged_out")) == 1


def test_activity_keeps_session_alive(core, scheduler):
    _register(core)
    for _ in range(10):
        scheduler.advance(250_000)
        core.hub.emit("pointer-move")
    assert core.auth.is_authenticated()
    scheduler.advance(300_000)
    assert core.auth.state == AuthState.ANONYMOUS


def test_restore_persisted_principal(scheduler, kv):
    first = build_core(build_app_config(), scheduler=scheduler, kv=kv)
    first.auth.register(ADA)
    uid = first.auth.principal.id
    first.cart.add_item(uid, "p2", "L")
    first.auth.shutdown()

    second = build_core(build_app_config(), scheduler=scheduler, kv=kv)
    restored = second.auth.initialize_from_persisted_principal()
    assert restored is not None and restored.id == uid
    assert second.auth.state == AuthState.AUTHENTICATED
    assert second.cart.items() == {"p2": {"L": 1}}
    assert second.orchestrator.is_timer_active()
    second.auth.shutdown()


def test_restore_without_or_with_corrupt_principal(scheduler, kv):
    c = build_core(build_app_config(), scheduler=scheduler, kv=kv)
    assert c.auth.initialize_from_persisted_principal() is None
    kv.set("user", "{nope")
    assert c.auth.initialize_from_persisted_principal() is None
    assert c.auth.state == AuthState.ANONYMOUS
    assert c.orchestrator.is_active() is False


def test_update_profile(core, kv):
    p = _register(core)
    updated = core.auth.update_profile(name="Ada L.")
    assert updated.name == "Ada L."
    assert core.auth.principal.name == "Ada L."
    assert json.loads(kv.get("user"))["name"] == "Ada L."
    assert core.directory.get(p.id).name == "Ada L."
    core.auth.logout()
    with pytest.raises(StateTransitionError):
        core.auth.update_profile(name="x")


def test_delete_account_clears_durable_data(core, core_events, kv):
    p = _register(core)
    core.cart.add_item(p.id, "p1", "M")
    assert kv.get(f"cart_{p.id}") is not None
    assert core.auth.delete_account() is True
    assert core.auth.state == AuthState.ANONYMOUS
    assert kv.get(f"cart_{p.id}") is None
    assert kv.get(f"orders_{p.id}") is None
    assert core.directory.get(p.id) is None
    assert core_events.of("auth.account.deleted")[0].payload == {"user_id": p.id}
    assert core.auth.delete_account() is False


def test_shutdown_stops_timers_but_keeps_principal(core, scheduler, kv):
    _register(core)
    core.auth.shutdown()
    assert core.orchestrator.is_timer_active() is False
    assert kv.get("user") is not None
    scheduler.advance(1_000_000)
    assert scheduler.pending() == 0
