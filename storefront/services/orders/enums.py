"""Order status transition rules.

This module holds the static transition table consulted by the order state
machine, together with the ``TransitionSource`` enum that records who asked
for a transition. ``OrderStatus`` itself lives with the ORM model and is
re-exported here for convenience.

Valid transitions:
- PENDING -> PROCESSING, CANCELLED
- PROCESSING -> SHIPPED, CANCELLED
- SHIPPED -> DELIVERED
- any state except REFUNDED -> REFUNDED (payment gateway only)
- CANCELLED, DELIVERED -> (no customer or admin transitions)
- REFUNDED -> (terminal state)
"""

from enum import Enum
from typing import Dict, FrozenSet

from storefront.database.models.order import OrderStatus
from storefront.database.models.payment import PaymentStatus


class TransitionSource(str, Enum):
    """Origin of a status change request."""

    CUSTOMER = "customer"
    ADMIN = "admin"
    PAYMENT_GATEWAY = "payment_gateway"


ORDER_STATUS_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}

# Refunds are financial events reported by the gateway and may arrive
# in any state that has not already been refunded.
GATEWAY_ONLY_TARGETS: FrozenSet[OrderStatus] = frozenset({OrderStatus.REFUNDED})


def get_allowed_order_transitions(
    current: OrderStatus,
    source: TransitionSource = TransitionSource.ADMIN,
) -> FrozenSet[OrderStatus]:
    """Get statuses reachable from ``current`` for the given source.

    Args:
        current: Current order status
        source: Who is requesting the transition

    Returns:
        Set of reachable target statuses
    """
    allowed = set(ORDER_STATUS_TRANSITIONS.get(current, frozenset()))
    if source == TransitionSource.PAYMENT_GATEWAY and current != OrderStatus.REFUNDED:
        allowed |= GATEWAY_ONLY_TARGETS
    return frozenset(allowed)


def validate_order_status_transition(
    current: OrderStatus,
    target: OrderStatus,
    source: TransitionSource = TransitionSource.ADMIN,
) -> bool:
    """Check whether ``current -> target`` is a legal edge for ``source``."""
    return target in get_allowed_order_transitions(current, source)


__all__ = [
    "GATEWAY_ONLY_TARGETS",
    "ORDER_STATUS_TRANSITIONS",
    "OrderStatus",
    "PaymentStatus",
    "TransitionSource",
    "get_allowed_order_transitions",
    "validate_order_status_transition",
]
