"""
Product catalog row consumed by checkout.

Catalog management lives elsewhere; the order lifecycle only reads name and
price and mutates ``stock_quantity`` through the inventory ledger.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from storefront.database.base import Base, IntegerIdMixin, TimestampMixin


class Product(IntegerIdMixin, TimestampMixin, Base):
    """
    Sellable catalog item.

    Attributes:
        id: Surrogate identifier
        name: Display name, copied onto order items at checkout
        description: Optional long description
        price: Current unit price
        stock_quantity: Units available for sale, never negative
        is_active: Whether the product can be added to carts
    """

    __tablename__ = "products"

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        comment="Product display name",
    )
    description: Mapped[Optional[str]] = mapped_column(
        String(2000),
        nullable=True,
        comment="Product description",
    )
    price: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
        comment="Current unit price",
    )
    stock_quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Units available for sale",
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        comment="Whether the product is purchasable",
    )

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
    )

    def has_stock(self, quantity: int) -> bool:
        return self.stock_quantity >= quantity
