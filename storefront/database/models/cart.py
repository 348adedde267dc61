"""
Shopping cart models.

Each user owns at most one cart. The cart row is created lazily and is never
deleted; checkout removes its items instead.
"""

from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.database.base import Base, IntegerIdMixin, TimestampMixin

if TYPE_CHECKING:
    from storefront.database.models.product import Product

MIN_ITEM_QUANTITY = 1
MAX_ITEM_QUANTITY = 100


class Cart(IntegerIdMixin, TimestampMixin, Base):
    """
    A user's open cart.

    Attributes:
        id: Surrogate identifier
        user_id: Owning user, unique
        items: Line items, eagerly loaded
    """

    __tablename__ = "carts"

    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        index=True,
        comment="Owning user identifier",
    )

    items: Mapped[list["CartItem"]] = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="CartItem.id",
    )

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def total_items(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def subtotal(self) -> Decimal:
        return sum((item.line_total for item in self.items), Decimal("0.00"))


class CartItem(IntegerIdMixin, TimestampMixin, Base):
    """
    One product line in a cart.

    ``unit_price`` is captured when the product is added so that later
    catalog price changes do not silently alter an open cart.
    """

    __tablename__ = "cart_items"

    cart_id: Mapped[int] = mapped_column(
        ForeignKey("carts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Requested units (1-100)",
    )
    unit_price: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
        comment="Unit price captured when the item was added",
    )

    cart: Mapped[Cart] = relationship("Cart", back_populates="items")
    product: Mapped["Product"] = relationship("Product", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("cart_id", "product_id", name="uq_cart_items_cart_product"),
        CheckConstraint(
            f"quantity >= {MIN_ITEM_QUANTITY} AND quantity <= {MAX_ITEM_QUANTITY}",
            name="ck_cart_items_quantity_range",
        ),
        CheckConstraint("unit_price >= 0", name="ck_cart_items_price_non_negative"),
    )

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity
