"""Order repository for database operations.

This module implements the OrderRepository class providing async data access
for orders, their line items and payments. Items and payment are loaded with
the relationship ``selectin`` strategy. The repository flushes but never
commits; transaction boundaries belong to the calling service.
"""

from datetime import date
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.logging import get_logger
from storefront.database.models.order import Order, OrderStatus
from storefront.database.models.payment import Payment
from storefront.database.models.webhook_event import OUTCOME_DEFERRED, ProcessedWebhookEvent

logger = get_logger(__name__)

ORDER_NUMBER_PREFIX = "ORD"
ORDER_SEQUENCE_WIDTH = 4


def order_number_prefix(day: date) -> str:
    """Return the per-day prefix, e.g. ``ORD-20240115-``."""
    return f"{ORDER_NUMBER_PREFIX}-{day:%Y%m%d}-"


class OrderRepository:
    """Repository for order data access operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def save(self, order: Order) -> Order:
        """
        Add an order (with its items and payment) to the session and flush.

        Args:
            order: Order aggregate to persist

        Returns:
            The same order with primary keys assigned

        Raises:
            IntegrityError: If the order number is already taken
            SQLAlchemyError: If the flush fails for another reason
        """
        self.session.add(order)
        await self.session.flush()

        logger.debug(
            "Order flushed",
            order_id=order.id,
            order_number=order.order_number,
            item_count=len(order.items),
        )
        return order

    async def get_by_id(self, order_id: int, for_update: bool = False) -> Optional[Order]:
        """
        Retrieve an order by primary key.

        Args:
            order_id: Order identifier
            for_update: Lock the row and reload it from the database

        Returns:
            Order with items and payment loaded, or None
        """
        stmt = select(Order).where(Order.id == order_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        try:
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to retrieve order",
                order_id=order_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

    async def get_by_order_number(self, order_number: str) -> Optional[Order]:
        stmt = select(Order).where(Order.order_number == order_number)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_payment_intent(
        self, payment_intent_id: str, for_update: bool = False
    ) -> Optional[Order]:
        """Retrieve the order paid for by ``payment_intent_id``."""
        stmt = (
            select(Order)
            .join(Payment, Payment.order_id == Order.id)
            .where(Payment.payment_intent_id == payment_intent_id)
        )
        if for_update:
            stmt = stmt.with_for_update(of=Order).execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def deferred_payment_events(
        self, payment_intent_id: str, event_type: str
    ) -> Sequence[ProcessedWebhookEvent]:
        """Gateway events for ``payment_intent_id`` that arrived before their order."""
        stmt = (
            select(ProcessedWebhookEvent)
            .where(
                ProcessedWebhookEvent.payment_intent_id == payment_intent_id,
                ProcessedWebhookEvent.event_type == event_type,
                ProcessedWebhookEvent.outcome == OUTCOME_DEFERRED,
            )
            .order_by(ProcessedWebhookEvent.processed_at)
            .with_for_update()
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_by_user(self, user_id: str) -> Sequence[Order]:
        """Orders placed by ``user_id``, newest first."""
        stmt = (
            select(Order)
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_all(
        self,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Sequence[Order]:
        """
        All orders, newest first, optionally filtered by status.

        Args:
            status: Only return orders in this status
            skip: Number of rows to skip
            limit: Maximum number of rows to return
        """
        stmt = select(Order).order_by(Order.created_at.desc(), Order.id.desc())
        if status is not None:
            stmt = stmt.where(Order.status == status)
        result = await self.session.execute(stmt.offset(skip).limit(limit))
        return result.scalars().all()

    async def next_order_number(self, prefix: str) -> str:
        """
        Compute the next order number for a day prefix.

        Reads the highest number issued under ``prefix`` in the current
        transaction and increments its numeric suffix. Numbers are compared
        by length first so that a suffix past 9999 still sorts last. The
        unique constraint on ``order_number`` rejects a concurrent duplicate,
        which the checkout coordinator treats as a retryable conflict.

        Args:
            prefix: Day prefix such as ``ORD-20240115-``

        Returns:
            The next free order number, ``<prefix>0001`` for the first order
        """
        stmt = (
            select(Order.order_number)
            .where(Order.order_number.startswith(prefix, autoescape=True))
            .order_by(
                func.length(Order.order_number).desc(),
                Order.order_number.desc(),
            )
            .limit(1)
        )
        result = await self.session.execute(stmt)
        latest = result.scalar_one_or_none()

        sequence = 1 if latest is None else int(latest[len(prefix):]) + 1
        return f"{prefix}{sequence:0{ORDER_SEQUENCE_WIDTH}d}"
