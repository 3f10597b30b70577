from __future__ import annotations

import logging
from typing import List, Mapping, Optional, Union

from sessionkeeper.core.cache.cart import Cart, CartLineRef, LineSelection, as_line_refs
from sessionkeeper.core.cache.orders import DeliveryInfo, Order, OrderHistory, OrderItem, PaymentMethod
from sessionkeeper.core.errors import ValidationError


class Checkout:
    """
    Places an order for selected cart lines, then removes exactly those lines.
    """

    def __init__(self, cart: Cart, orders: OrderHistory, *, logger: Optional[logging.Logger] = None):
        self.cart = cart
        self.orders = orders
        self.logger = logger or logging.getLogger("sessionkeeper.cache.checkout")

    def place_order(
        self,
        user_id: Optional[str],
        selection: LineSelection,
        delivery_info: Union[DeliveryInfo, dict],
        prices: Mapping[str, float],
        *,
        delivery_fee: float = 0.0,
        payment_method: Union[PaymentMethod, str, None] = None,
    ) -> Optional[Order]:
        refs = as_line_refs(selection)
        if not refs:
            raise ValidationError("Select items to order.")
        with self.cart.lock:
            lines: List[OrderItem] = []
            for ref in refs:
                q = self.cart.quantity(ref.item_id, ref.size)
                if q <= 0:
                    raise ValidationError("Selected item is not in the cart.", item_id=ref.item_id, size=ref.size)
                if ref.item_id not in prices:
                    raise ValidationError("Selected item has no price.", item_id=ref.item_id)
                lines.append(OrderItem(item_id=ref.item_id, size=ref.size, quantity=q, price=float(prices[ref.item_id])))
            subtotal = sum(li.price * li.quantity for li in lines)
            total = subtotal + (float(delivery_fee) if subtotal > 0 else 0.0)
            order = self.orders.place_order(user_id, items=lines, delivery_info=delivery_info, total_amount=total, payment_method=payment_method)
            if order is None:
                return None
            self.cart.remove_selected(user_id, [CartLineRef(item_id=li.item_id, size=li.size) for li in lines])
            return order
