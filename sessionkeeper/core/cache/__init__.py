"""
Per-user collections (cart, order history) and the coordinator that swaps them on
principal changes.
"""

from sessionkeeper.core.cache.cart import CART_KEY, Cart, CartItems, CartLine, CartLineRef, cart_store
from sessionkeeper.core.cache.checkout import Checkout
from sessionkeeper.core.cache.collection import UserScopedCollection
from sessionkeeper.core.cache.coordinator import MultiTenantCacheCoordinator
from sessionkeeper.core.cache.orders import ORDERS_KEY, DeliveryInfo, Order, OrderHistory, OrderItem, OrderStatus, PaymentMethod, orders_store

__all__ = [
    "CART_KEY",
    "Cart",
    "CartItems",
    "CartLine",
    "CartLineRef",
    "Checkout",
    "DeliveryInfo",
    "MultiTenantCacheCoordinator",
    "ORDERS_KEY",
    "Order",
    "OrderHistory",
    "OrderItem",
    "OrderStatus",
    "PaymentMethod",
    "UserScopedCollection",
    "cart_store",
    "orders_store",
]
