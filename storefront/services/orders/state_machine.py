"""Order state machine implementation with transition validation.

Every status change, whether requested by an administrator, by the customer
cancelling their own order, or by the payment event reconciler, goes through
``OrderStateMachine.transition``. Side effects are keyed on the target status
so that the same change always produces the same timestamps and stock
movements regardless of who asked for it.
"""

from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.exceptions import InvalidTransitionError
from storefront.core.logging import get_logger
from storefront.database.base import utc_now
from storefront.database.models.order import Order
from storefront.services.inventory.ledger import InventoryLedger
from storefront.services.orders.enums import (
    OrderStatus,
    TransitionSource,
    get_allowed_order_transitions,
    validate_order_status_transition,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class TransitionContext:
    """Who requested a transition and the data that travels with it."""

    source: TransitionSource
    actor_id: Optional[str] = None
    tracking_number: Optional[str] = None
    reason: Optional[str] = None


SideEffect = Callable[[Order, TransitionContext, datetime], Awaitable[None]]


class OrderStateMachine:
    """State machine for order lifecycle transitions.

    The machine mutates the order (and, for cancellations, product stock)
    and flushes, but does not commit. If ``transition`` raises, the caller
    must roll back the session to discard any partial stock movement.
    """

    def __init__(self, session: AsyncSession, ledger: Optional[InventoryLedger] = None):
        self.session = session
        self.ledger = ledger or InventoryLedger(session)
        self._side_effects: Dict[OrderStatus, SideEffect] = {
            OrderStatus.SHIPPED: self._effect_shipped,
            OrderStatus.DELIVERED: self._effect_delivered,
            OrderStatus.CANCELLED: self._effect_cancelled,
        }

    def can_transition(
        self,
        order: Order,
        target_status: OrderStatus,
        source: TransitionSource = TransitionSource.ADMIN,
    ) -> bool:
        return validate_order_status_transition(order.status, target_status, source)

    async def transition(
        self,
        order: Order,
        target_status: OrderStatus,
        context: TransitionContext,
        idempotent: bool = False,
    ) -> Order:
        """Move ``order`` to ``target_status`` and apply its side effects.

        Args:
            order: Order to transition, attached to this machine's session
            target_status: Desired status
            context: Source of the request plus optional tracking number
            idempotent: Treat a transition to the current status as a no-op
                instead of an error (used for redelivered gateway events)

        Returns:
            The order, updated and flushed

        Raises:
            InvalidTransitionError: If the edge is not allowed for the source
        """
        current_status = order.status

        if current_status == target_status:
            if idempotent:
                logger.info(
                    "Order already in target status",
                    order_id=order.id,
                    status=target_status.value,
                    source=context.source.value,
                )
                return order
            raise InvalidTransitionError(
                current_status.value,
                target_status.value,
                order_id=order.id,
            )

        if not validate_order_status_transition(current_status, target_status, context.source):
            allowed = get_allowed_order_transitions(current_status, context.source)
            logger.warning(
                "Rejected order status transition",
                order_id=order.id,
                current_status=current_status.value,
                target_status=target_status.value,
                source=context.source.value,
            )
            raise InvalidTransitionError(
                current_status.value,
                target_status.value,
                order_id=order.id,
                allowed_transitions=sorted(status.value for status in allowed),
            )

        now = utc_now()
        side_effect = self._side_effects.get(target_status)
        if side_effect is not None:
            await side_effect(order, context, now)

        order.status = target_status
        order.updated_at = now
        await self.session.flush()

        logger.info(
            "Order status changed",
            order_id=order.id,
            order_number=order.order_number,
            transition=f"{current_status.value}->{target_status.value}",
            source=context.source.value,
            actor_id=context.actor_id,
            reason=context.reason,
        )
        return order

    # Side effects

    async def _effect_shipped(
        self, order: Order, context: TransitionContext, now: datetime
    ) -> None:
        order.shipped_at = now
        if context.tracking_number and context.tracking_number.strip():
            order.tracking_number = context.tracking_number.strip()

    async def _effect_delivered(
        self, order: Order, context: TransitionContext, now: datetime
    ) -> None:
        order.delivered_at = now

    async def _effect_cancelled(
        self, order: Order, context: TransitionContext, now: datetime
    ) -> None:
        quantities = Counter()
        for item in order.items:
            quantities[item.product_id] += item.quantity
        await self.ledger.restore_many(quantities)
        order.cancelled_at = now
