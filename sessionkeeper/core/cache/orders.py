from __future__ import annotations

import time
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from sessionkeeper.core.cache.collection import UserScopedCollection
from sessionkeeper.core.errors import ValidationError
from sessionkeeper.core.storage.kv import KeyValueStore
from sessionkeeper.core.storage.scoped import UserScopedStore

ORDERS_KEY = "orders"
DELIVERY_ESTIMATE = timedelta(days=7)


class OrderStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    processing = "processing"
    shipped = "shipped"
    delivered = "delivered"
    cancelled = "cancelled"


class PaymentMethod(str, Enum):
    cod = "cod"
    card = "card"
    paypal = "paypal"
    bank_transfer = "bank_transfer"


class _Persisted(BaseModel):
    model_config = ConfigDict(extra="ignore", alias_generator=to_camel, populate_by_name=True)


class OrderItem(_Persisted):
    item_id: str
    size: str
    quantity: int = Field(ge=1)
    price: float = Field(ge=0)
    name: Optional[str] = None
    image: Optional[str] = None


class DeliveryInfo(_Persisted):
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    street: str = ""
    city: str = ""
    state: str = ""
    zipcode: str = ""
    country: str = ""
    phone: str = ""


OrderLines = Union[List[OrderItem], Dict[str, Dict[str, int]]]


class Order(_Persisted):
    id: str
    user_id: str
    items: OrderLines
    delivery_info: DeliveryInfo
    payment_method: PaymentMethod = PaymentMethod.cod
    total_amount: float
    status: OrderStatus = OrderStatus.confirmed
    created_at: datetime
    estimated_delivery_at: datetime = Field(alias="estimatedDelivery")


# newest first
OrderList = List[Order]


def orders_store(kv: KeyValueStore, **kwargs) -> UserScopedStore[OrderList]:
    return UserScopedStore(kv=kv, collection_key=ORDERS_KEY, adapter=TypeAdapter(OrderList), default_factory=list, **kwargs)


def _wall_ms() -> float:
    return time.time() * 1000.0


class OrderHistory(UserScopedCollection[OrderList]):
    name = "orders"

    def __init__(self, store: UserScopedStore[OrderList], *, clock_ms: Callable[[], float] = _wall_ms, **kwargs):
        super().__init__(store, **kwargs)
        self.clock_ms = clock_ms

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self.clock_ms() / 1000.0, tz=timezone.utc)

    # ---- reads ----
    def orders(self) -> OrderList:
        return self.snapshot()

    def by_id(self, order_id: str) -> Optional[Order]:
        with self.lock:
            for o in self._value:
                if o.id == order_id:
                    return o.model_copy(deep=True)
        return None

    def by_status(self, status: Union[OrderStatus, str]) -> OrderList:
        st = OrderStatus(status)
        with self.lock:
            return [o.model_copy(deep=True) for o in self._value if o.status == st]

    def recent(self, days: int = 30) -> OrderList:
        cutoff = self._now() - timedelta(days=int(days))
        with self.lock:
            return [o.model_copy(deep=True) for o in self._value if _aware(o.created_at) >= cutoff]

    def total_count(self) -> int:
        with self.lock:
            return len(self._value)

    def total_amount(self) -> float:
        with self.lock:
            return float(sum(o.total_amount for o in self._value))

    # ---- writes ----
    def place_order(
        self,
        user_id: Optional[str],
        *,
        items: OrderLines,
        delivery_info: Union[DeliveryInfo, dict],
        total_amount: float,
        payment_method: Union[PaymentMethod, str, None] = None,
    ) -> Optional[Order]:
        if not items:
            raise ValidationError("An order needs at least one item.")
        if float(total_amount) < 0:
            raise ValidationError("Order total cannot be negative.", total_amount=total_amount)
        try:
            method = PaymentMethod(payment_method or PaymentMethod.cod)
        except ValueError as e:
            raise ValidationError("Unknown payment method.", payment_method=payment_method) from e
        info = delivery_info if isinstance(delivery_info, DeliveryInfo) else DeliveryInfo.model_validate(delivery_info)

        with self.lock:
            if not self._guard(user_id, "place_order"):
                return None
            created = self._now()
            order = Order(
                id=uuid.uuid4().hex,
                user_id=self._user_id,
                items=items,
                delivery_info=info,
                payment_method=method,
                total_amount=float(total_amount),
                status=OrderStatus.confirmed,
                created_at=created,
                estimated_delivery_at=created + DELIVERY_ESTIMATE,
            )
            self._commit([order] + list(self._value))
            return order.model_copy(deep=True)

    def update_status(self, user_id: Optional[str], order_id: str, status: Union[OrderStatus, str]) -> bool:
        try:
            st = OrderStatus(status)
        except ValueError as e:
            raise ValidationError("Unknown order status.", status=status) from e
        with self.lock:
            if not self._guard(user_id, "update_status"):
                return False
            updated: OrderList = []
            hit = False
            for o in self._value:
                if o.id == order_id and not hit:
                    o = o.model_copy(update={"status": st})
                    hit = True
                updated.append(o)
            if not hit:
                return False
            self._commit(updated)
            return True

    def cancel(self, user_id: Optional[str], order_id: str) -> bool:
        return self.update_status(user_id, order_id, OrderStatus.cancelled)


def _aware(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt
