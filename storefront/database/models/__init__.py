"""
Database models package.

Importing this package registers every table on ``Base.metadata`` for
Alembic autogeneration and ``create_all``.
"""

from storefront.database.base import Base
from storefront.database.models.cart import Cart, CartItem
from storefront.database.models.order import Order, OrderItem, OrderStatus
from storefront.database.models.payment import Payment, PaymentStatus
from storefront.database.models.product import Product
from storefront.database.models.webhook_event import ProcessedWebhookEvent

__all__ = [
    "Base",
    "Cart",
    "CartItem",
    "Order",
    "OrderItem",
    "OrderStatus",
    "Payment",
    "PaymentStatus",
    "Product",
    "ProcessedWebhookEvent",
]
