from __future__ import annotations

import pytest

from sessionkeeper.core.cache.cart import Cart, CartLineRef, cart_store
from sessionkeeper.core.cache.checkout import Checkout
from sessionkeeper.core.cache.orders import OrderHistory, orders_store
from sessionkeeper.core.errors import ValidationError
from sessionkeeper.core.storage.kv import MemoryKeyValueStore

PRICES = {"p1": 10.0, "p2": 4.0}


def _setup():
    kv = MemoryKeyValueStore()
    cart = Cart(cart_store(kv))
    orders = OrderHistory(orders_store(kv))
    cart.attach("u1", {})
    orders.attach("u1", [])
    return cart, orders, Checkout(cart, orders)


def test_places_selected_lines_and_removes_only_those():
    cart, orders, co = _setup()
    cart.add_item("u1", "p1", "M")
    cart.add_item("u1", "p1", "M")
    cart.add_item("u1", "p2", "S")
    order = co.place_order("u1", [CartLineRef("p1", "M")], {"city": "Oslo"}, PRICES, delivery_fee=5.0)
    assert order is not None
    assert [(i.item_id, i.size, i.quantity, i.price) for i in order.items] == [("p1", "M", 2, 10.0)]
    assert order.total_amount == pytest.approx(25.0)
    assert cart.items() == {"p2": {"S": 1}}
    assert orders.total_count() == 1


def test_rejects_empty_or_unknown_selection():
    cart, orders, co = _setup()
    cart.add_item("u1", "p1", "M")
    with pytest.raises(ValidationError):
        co.place_order("u1", [], {}, PRICES)
    with pytest.raises(ValidationError):
        co.place_order("u1", [("p1", "XL")], {}, PRICES)
    with pytest.raises(ValidationError):
        co.place_order("u1", [("p1", "M")], {}, {})
    assert cart.items() == {"p1": {"M": 1}}
    assert orders.total_count() == 0


def test_non_active_user_places_nothing():
    cart, orders, co = _setup()
    cart.add_item("u1", "p1", "M")
    assert co.place_order("u2", [("p1", "M")], {}, PRICES) is None
    assert cart.items() == {"p1": {"M": 1}}


def test_line_selected_twice_is_ordered_and_charged_once():
    cart, orders, co = _setup()
    cart.add_item("u1", "p1", "M")
    cart.add_item("u1", "p2", "S")
    sel = [("p1", "M"), ("p2", "S"), CartLineRef("p1", "M")]
    assert cart.selected_amount(sel, PRICES) == pytest.approx(14.0)
    order = co.place_order("u1", sel, {}, PRICES)
    assert [(i.item_id, i.size, i.quantity) for i in order.items] == [("p1", "M", 1), ("p2", "S", 1)]
    assert order.total_amount == pytest.approx(14.0)
    assert cart.items() == {}
