from __future__ import annotations

import json

import pytest

from sessionkeeper.core.cache.cart import Cart, CartLine, cart_store
from sessionkeeper.core.errors import StateTransitionError, ValidationError
from sessionkeeper.core.storage.kv import MemoryKeyValueStore
from tests.helpers.fakes import FailingKeyValueStore, RecordingLogger

PRICES = {"p1": 10.0, "p2": 25.5}


def _cart(kv=None, user="u1", logger=None):
    kv = kv if kv is not None else MemoryKeyValueStore()
    c = Cart(cart_store(kv), logger=logger)
    if user:
        c.attach(user, c.store.load(user))
    return kv, c


def test_add_item_increments_and_persists():
    kv, c = _cart()
    assert c.add_item("u1", "p1", "M") is True
    c.add_item("u1", "p1", "M")
    c.add_item("u1", "p1", "L")
    assert c.items() == {"p1": {"M": 2, "L": 1}}
    assert json.loads(kv.get("cart_u1")) == {"p1": {"M": 2, "L": 1}}
    assert c.count() == 3


def test_add_item_requires_size():
    _kv, c = _cart()
    with pytest.raises(ValidationError) as ei:
        c.add_item("u1", "p1", "")
    assert ei.value.user_message == "Select Product Size"
    assert c.items() == {}


def test_update_quantity_and_zero_removes():
    kv, c = _cart()
    c.add_item("u1", "p1", "M")
    c.update_quantity("u1", "p1", "M", 5)
    assert c.quantity("p1", "M") == 5
    c.update_quantity("u1", "p1", "M", 0)
    assert c.items() == {}
    assert json.loads(kv.get("cart_u1")) == {}
    with pytest.raises(ValidationError):
        c.update_quantity("u1", "p1", "M", -1)


def test_remove_item_and_selected():
    _kv, c = _cart()
    for item, size in [("p1", "M"), ("p1", "L"), ("p2", "S")]:
        c.add_item("u1", item, size)
    c.remove_item("u1", "p1", "L")
    assert c.items() == {"p1": {"M": 1}, "p2": {"S": 1}}
    assert c.remove_selected("u1", [("p1", "M"), ("p9", "XL")]) == 1
    assert c.lines() == [CartLine(item_id="p2", size="S", quantity=1)]
    with pytest.raises(ValidationError):
        c.remove_selected("u1", [])


def test_amounts():
    _kv, c = _cart()
    c.add_item("u1", "p1", "M")
    c.add_item("u1", "p1", "M")
    c.add_item("u1", "p2", "S")
    c.add_item("u1", "unpriced", "S")
    assert c.amount(PRICES) == pytest.approx(45.5)
    assert c.selected_amount([("p2", "S")], PRICES) == pytest.approx(25.5)


def test_clear():
    kv, c = _cart()
    assert c.clear("u1") is False
    c.add_item("u1", "p1", "M")
    assert c.clear("u1") is True
    assert c.items() == {}
    assert json.loads(kv.get("cart_u1")) == {}


def test_writes_for_non_active_user_rejected():
    log = RecordingLogger()
    kv, c = _cart(logger=log)
    assert c.add_item("u2", "p1", "M") is False
    assert c.add_item(None, "p1", "M") is False
    assert c.items() == {}
    assert kv.get("cart_u2") is None
    assert len(log.messages("warning")) == 2


def test_detached_cart_reads_empty_and_rejects_writes():
    kv, c = _cart(user=None)
    assert c.count() == 0 and c.amount(PRICES) == 0.0
    assert c.add_item("u1", "p1", "M") is False
    assert kv.keys() == []


def test_attach_normalizes_and_refuses_second_user():
    _kv, c = _cart(user=None)
    c.attach("u1", {"p1": {"M": 0, "L": 2}, "p2": {"S": 0}})
    assert c.items() == {"p1": {"L": 2}}
    with pytest.raises(StateTransitionError):
        c.attach("u2", {})
    assert c.detach() == "u1"
    assert c.items() == {}


def test_save_failure_keeps_memory_state():
    kv = FailingKeyValueStore(fail_set=True)
    _kv, c = _cart(kv=kv)
    assert c.add_item("u1", "p1", "M") is True
    assert c.items() == {"p1": {"M": 1}}


def test_snapshot_is_a_copy():
    _kv, c = _cart()
    c.add_item("u1", "p1", "M")
    snap = c.items()
    snap["p1"]["M"] = 99
    assert c.quantity("p1", "M") == 1
