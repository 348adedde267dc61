"""
API v1 package initialization.

This module collects the v1 routers for the storefront API.
"""

from storefront.api.v1.cart import router as cart_router
from storefront.api.v1.orders import router as orders_router
from storefront.api.v1.payments import router as payments_router
from storefront.api.v1.webhooks import router as webhooks_router

__all__ = ["cart_router", "orders_router", "payments_router", "webhooks_router"]
