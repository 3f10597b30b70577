"""
sessionkeeper: inactivity session expiry + per-user cart/order caches for a storefront client.
"""

__version__ = "0.1.0"
