"""
Order aggregate: the order row, its line items and its payment.

Orders are created by checkout in ``pending`` status and afterwards change
only through the order state machine. They are never deleted; cancellation
and refund are statuses.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.database.base import Base, IntegerIdMixin, TimestampMixin

if TYPE_CHECKING:
    from storefront.database.models.payment import Payment


class OrderStatus(str, Enum):
    """
    Order lifecycle status.

    Attributes:
        PENDING: Order placed, awaiting payment settlement
        PROCESSING: Payment settled, order being prepared
        SHIPPED: Handed to the carrier
        DELIVERED: Received by the customer
        CANCELLED: Cancelled before shipment, stock restored
        REFUNDED: Payment returned to the customer
    """

    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"

    @classmethod
    def from_string(cls, value: str) -> "OrderStatus":
        """
        Parse a status name case-insensitively.

        Raises:
            ValueError: If value is not a valid status
        """
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(f"Invalid order status: {value}") from None

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.CANCELLED, OrderStatus.REFUNDED)

    @property
    def can_cancel(self) -> bool:
        return self in (OrderStatus.PENDING, OrderStatus.PROCESSING)


class Order(IntegerIdMixin, TimestampMixin, Base):
    """
    Customer order.

    Monetary fields are set once by the pricing calculator at checkout and
    satisfy ``total_amount = subtotal + tax_amount + shipping_amount``. The
    shipping address is denormalized onto the row so that the order stays
    stable when the customer edits their address book.
    """

    __tablename__ = "orders"

    order_number: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        unique=True,
        index=True,
        comment="Human-readable order number, ORD-YYYYMMDD-NNNN",
    )
    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
        comment="Owning user identifier",
    )
    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(
            OrderStatus,
            name="order_status",
            create_constraint=True,
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=OrderStatus.PENDING,
        index=True,
        comment="Current order status",
    )

    subtotal: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
        comment="Sum of line subtotals",
    )
    tax_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
        comment="Sales tax",
    )
    shipping_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
        comment="Shipping charge",
    )
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
        comment="Grand total",
    )

    shipping_street: Mapped[str] = mapped_column(String(200), nullable=False)
    shipping_city: Mapped[str] = mapped_column(String(100), nullable=False)
    shipping_province: Mapped[str] = mapped_column(String(100), nullable=False)
    shipping_postal_code: Mapped[str] = mapped_column(String(20), nullable=False)
    shipping_country: Mapped[str] = mapped_column(String(100), nullable=False)

    tracking_number: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Carrier tracking number",
    )
    notes: Mapped[Optional[str]] = mapped_column(
        String(1000),
        nullable=True,
        comment="Customer notes",
    )

    shipped_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    delivered_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    items: Mapped[list["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.id",
    )
    payment: Mapped[Optional["Payment"]] = relationship(
        "Payment",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        uselist=False,
    )

    __table_args__ = (
        CheckConstraint("subtotal >= 0", name="ck_orders_subtotal_non_negative"),
        CheckConstraint("tax_amount >= 0", name="ck_orders_tax_non_negative"),
        CheckConstraint("shipping_amount >= 0", name="ck_orders_shipping_non_negative"),
        CheckConstraint("total_amount >= 0", name="ck_orders_total_non_negative"),
        Index("ix_orders_user_created", "user_id", "created_at"),
    )

    @property
    def shipping_address(self) -> dict[str, str]:
        return {
            "street": self.shipping_street,
            "city": self.shipping_city,
            "province": self.shipping_province,
            "postal_code": self.shipping_postal_code,
            "country": self.shipping_country,
        }

    def is_owned_by(self, user_id: str) -> bool:
        return self.user_id == user_id


class OrderItem(IntegerIdMixin, Base):
    """
    Snapshot of one purchased product.

    Name and price are copied from the catalog at checkout so historical
    orders are unaffected by later catalog edits.
    """

    __tablename__ = "order_items"

    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        index=True,
        comment="Catalog product identifier (not a foreign key)",
    )
    product_name: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
    )
    discount: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
        default=Decimal("0.00"),
    )

    order: Mapped[Order] = relationship("Order", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_order_items_price_non_negative"),
        CheckConstraint("discount >= 0", name="ck_order_items_discount_non_negative"),
    )

    @property
    def subtotal(self) -> Decimal:
        return self.quantity * self.unit_price - self.discount
