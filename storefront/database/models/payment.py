"""
Payment record attached one-to-one to an order.
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
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.database.base import Base, IntegerIdMixin, utc_now

if TYPE_CHECKING:
    from storefront.database.models.order import Order


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class Payment(IntegerIdMixin, Base):
    """
    Settlement state of an order's payment intent.

    Attributes:
        order_id: Owning order, unique
        payment_intent_id: Opaque gateway handle
        amount: Charged amount, equal to the order total
        currency: Lowercase ISO currency code
        status: Pending, completed, failed or refunded
        payment_method: Display label such as ``card``
        failure_reason: Gateway message for failed payments
        refunded_amount: Amount reported by the gateway on refund
        created_at: When the record was created
        completed_at: When the payment was settled
    """

    __tablename__ = "payments"

    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    payment_intent_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        comment="Gateway payment intent identifier",
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(
            PaymentStatus,
            name="payment_status",
            create_constraint=True,
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    payment_method: Mapped[str] = mapped_column(String(50), nullable=False)
    failure_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    refunded_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    order: Mapped["Order"] = relationship("Order", back_populates="payment")

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_payments_amount_non_negative"),
    )
