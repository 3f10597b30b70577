from __future__ import annotations

import json

import pytest

from sessionkeeper.core.errors import EmailAlreadyInUseError
from sessionkeeper.core.identity.directory import USERS_KEY, UserDirectory
from sessionkeeper.core.identity.models import Credentials, Principal, RegisterData, avatar_url
from sessionkeeper.core.identity.passwords import hash_password, verify_password
from sessionkeeper.core.identity.principal_store import USER_KEY, PrincipalStore
from sessionkeeper.core.storage.kv import MemoryKeyValueStore
from tests.helpers.fakes import FailingKeyValueStore, FakeClock, RecordingLogger


def _dir(kv=None, logger=None):
    kv = kv if kv is not None else MemoryKeyValueStore()
    clock = FakeClock(1_700_000_000_000.0)
    return kv, clock, UserDirectory(kv, clock_ms=clock.time, logger=logger)


def test_password_hash_round_trip():
    h = hash_password("s3cret")
    assert h.startswith("scrypt$")
    assert "s3cret" not in h
    assert verify_password("s3cret", h) is True
    assert verify_password("wrong", h) is False
    assert verify_password("s3cret", "garbage") is False
    assert hash_password("s3cret") != h


def test_register_then_verify():
    kv, clock, d = _dir()
    p = d.register(RegisterData(name="Ada Lovelace", email=" Ada@Example.com ", password="pw"))
    assert p.id == "1700000000000"
    assert p.email == "ada@example.com"
    assert p.avatar == avatar_url("Ada Lovelace")
    assert d.verify(Credentials(email="ADA@example.com", password="pw")) == p
    assert d.verify(Credentials(email="ada@example.com", password="nope")) is None
    assert d.verify(Credentials(email="bob@example.com", password="pw")) is None
    raw = json.loads(kv.get(USERS_KEY))
    assert raw[0]["createdAt"]
    assert raw[0]["passwordHash"].startswith("scrypt$")


def test_duplicate_email_rejected():
    kv, clock, d = _dir()
    d.register(RegisterData(name="A", email="a@x.io", password="1"))
    with pytest.raises(EmailAlreadyInUseError) as ei:
        d.register(RegisterData(name="B", email="A@X.io", password="2"))
    assert ei.value.user_message == "Email has already been used."
    assert len(d.list_users()) == 1


def test_ids_unique_within_same_millisecond():
    kv, clock, d = _dir()
    a = d.register(RegisterData(name="A", email="a@x.io", password="1"))
    b = d.register(RegisterData(name="B", email="b@x.io", password="2"))
    assert a.id != b.id


def test_update_profile_regenerates_avatar():
    kv, clock, d = _dir()
    p = d.register(RegisterData(name="A", email="a@x.io", password="1"))
    d.register(RegisterData(name="B", email="b@x.io", password="2"))
    updated = d.update_profile(p.id, name="Alice")
    assert updated.name == "Alice" and updated.avatar == avatar_url("Alice")
    assert d.get(p.id).name == "Alice"
    with pytest.raises(EmailAlreadyInUseError):
        d.update_profile(p.id, email="b@x.io")
    assert d.update_profile("missing", name="x") is None


def test_delete():
    kv, clock, d = _dir()
    p = d.register(RegisterData(name="A", email="a@x.io", password="1"))
    assert d.delete(p.id) is True
    assert d.delete(p.id) is False
    assert d.find_by_email("a@x.io") is None


def test_corrupt_directory_reads_empty():
    log = RecordingLogger()
    kv, clock, d = _dir(MemoryKeyValueStore({USERS_KEY: "[{"}), logger=log)
    assert d.list_users() == []
    assert log.messages("warning")


def test_directory_save_failure_logged():
    log = RecordingLogger()
    kv, clock, d = _dir(FailingKeyValueStore(fail_set=True), logger=log)
    d.register(RegisterData(name="A", email="a@x.io", password="1"))
    assert any("save users failed" in m for m in log.messages("error"))


def test_principal_store_round_trip_and_corruption():
    kv = MemoryKeyValueStore()
    store = PrincipalStore(kv)
    assert store.load() is None
    p = Principal(id="u1", email="a@x.io", name="A", avatar="", created_at="2024-01-01T00:00:00Z")
    store.save(p)
    assert json.loads(kv.get(USER_KEY))["createdAt"].startswith("2024-01-01")
    assert store.load() == p
    store.clear()
    assert kv.get(USER_KEY) is None
    log = RecordingLogger()
    kv.set(USER_KEY, "{oops")
    assert PrincipalStore(kv, logger=log).load() is None
    assert log.messages("warning")


def test_register_data_validation():
    with pytest.raises(ValueError):
        RegisterData(name="", email="a@x.io", password="1")
    with pytest.raises(ValueError):
        Credentials(email="a@x.io", password="1", remember=True)
