from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from pydantic import TypeAdapter

from sessionkeeper.core.cache.collection import UserScopedCollection
from sessionkeeper.core.errors import ValidationError
from sessionkeeper.core.storage.kv import KeyValueStore
from sessionkeeper.core.storage.scoped import UserScopedStore

# itemId -> (size -> quantity); absent entry means zero
CartItems = Dict[str, Dict[str, int]]

CART_KEY = "cart"


@dataclass(frozen=True)
class CartLineRef:
    item_id: str
    size: str


@dataclass(frozen=True)
class CartLine:
    item_id: str
    size: str
    quantity: int


LineSelection = Iterable[Union[CartLineRef, Tuple[str, str]]]


def cart_store(kv: KeyValueStore, **kwargs) -> UserScopedStore[CartItems]:
    return UserScopedStore(kv=kv, collection_key=CART_KEY, adapter=TypeAdapter(CartItems), default_factory=dict, **kwargs)


def as_line_refs(selection: LineSelection) -> List[CartLineRef]:
    """
    Normalise a selection to line refs. A line selected twice counts once; first
    occurrence order is kept.
    """
    out: List[CartLineRef] = []
    for s in selection:
        if isinstance(s, CartLineRef):
            ref = s
        else:
            item_id, size = s
            ref = CartLineRef(item_id=str(item_id), size=str(size))
        if ref not in out:
            out.append(ref)
    return out


def _drop(items: CartItems, item_id: str, size: str) -> bool:
    sizes = items.get(item_id)
    if not sizes or size not in sizes:
        return False
    del sizes[size]
    if not sizes:
        del items[item_id]
    return True


class Cart(UserScopedCollection[CartItems]):
    name = "cart"

    def _normalize(self, value: CartItems) -> CartItems:
        clean: CartItems = {}
        for item_id, sizes in (value or {}).items():
            kept = {str(size): int(q) for size, q in (sizes or {}).items() if int(q) > 0}
            if kept:
                clean[str(item_id)] = kept
        return clean

    # ---- reads ----
    def items(self) -> CartItems:
        return self.snapshot()

    def lines(self) -> List[CartLine]:
        with self.lock:
            return [CartLine(item_id=i, size=s, quantity=q) for i, sizes in self._value.items() for s, q in sizes.items()]

    def quantity(self, item_id: str, size: str) -> int:
        with self.lock:
            return int((self._value.get(item_id) or {}).get(size, 0))

    def count(self) -> int:
        with self.lock:
            if self._user_id is None:
                return 0
            return sum(q for sizes in self._value.values() for q in sizes.values() if q > 0)

    def amount(self, prices: Mapping[str, float]) -> float:
        with self.lock:
            if self._user_id is None:
                return 0.0
            total = 0.0
            for item_id, sizes in self._value.items():
                price = prices.get(item_id)
                if price is None:
                    continue
                total += float(price) * sum(q for q in sizes.values() if q > 0)
            return total

    def selected_amount(self, selection: LineSelection, prices: Mapping[str, float]) -> float:
        total = 0.0
        with self.lock:
            for ref in as_line_refs(selection):
                price = prices.get(ref.item_id)
                q = (self._value.get(ref.item_id) or {}).get(ref.size, 0)
                if price is not None and q:
                    total += float(price) * q
        return total

    # ---- writes ----
    def add_item(self, user_id: Optional[str], item_id: str, size: str) -> bool:
        if not str(size or "").strip():
            raise ValidationError("Select Product Size")
        if not str(item_id or "").strip():
            raise ValidationError("Unknown product.")

        def _apply(items: CartItems) -> CartItems:
            sizes = items.setdefault(str(item_id), {})
            sizes[str(size)] = int(sizes.get(str(size), 0)) + 1
            return items

        return self._mutate(user_id, "add_item", _apply)

    def update_quantity(self, user_id: Optional[str], item_id: str, size: str, quantity: int) -> bool:
        try:
            q = int(quantity)
        except (TypeError, ValueError) as e:
            raise ValidationError("Quantity must be a whole number.", quantity=quantity) from e
        if q < 0:
            raise ValidationError("Quantity cannot be negative.", quantity=q)

        def _apply(items: CartItems) -> CartItems:
            if q == 0:
                _drop(items, str(item_id), str(size))
            else:
                items.setdefault(str(item_id), {})[str(size)] = q
            return items

        return self._mutate(user_id, "update_quantity", _apply)

    def remove_item(self, user_id: Optional[str], item_id: str, size: str) -> bool:
        def _apply(items: CartItems) -> CartItems:
            _drop(items, str(item_id), str(size))
            return items

        return self._mutate(user_id, "remove_item", _apply)

    def remove_selected(self, user_id: Optional[str], selection: LineSelection) -> int:
        refs = as_line_refs(selection)
        if not refs:
            raise ValidationError("Select items to remove.")
        removed = {"n": 0}

        def _apply(items: CartItems) -> CartItems:
            for ref in refs:
                if _drop(items, ref.item_id, ref.size):
                    removed["n"] += 1
            return items

        if not self._mutate(user_id, "remove_selected", _apply):
            return 0
        return removed["n"]

    def clear(self, user_id: Optional[str]) -> bool:
        with self.lock:
            if not self._guard(user_id, "clear"):
                return False
            if not self._value:
                return False
            self._commit({})
            return True
