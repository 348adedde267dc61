"""
Tests for OrderStateMachine.

Tests cover the transition table per source, idempotent replays, and the
side effects attached to shipped, delivered and cancelled targets.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from storefront.core.exceptions import InvalidTransitionError
from storefront.services.inventory.ledger import InventoryLedger
from storefront.services.orders.enums import (
    OrderStatus,
    TransitionSource,
    get_allowed_order_transitions,
    validate_order_status_transition,
)
from storefront.services.orders.state_machine import OrderStateMachine, TransitionContext

ADMIN = TransitionContext(source=TransitionSource.ADMIN, actor_id="admin-1")
CUSTOMER = TransitionContext(source=TransitionSource.CUSTOMER, actor_id="user-1")
GATEWAY = TransitionContext(source=TransitionSource.PAYMENT_GATEWAY, actor_id="evt_1")


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def mock_session() -> MagicMock:
    session = MagicMock()
    session.flush = AsyncMock()
    return session


@pytest.fixture
def mock_ledger() -> AsyncMock:
    ledger = AsyncMock(spec=InventoryLedger)
    ledger.restore_many.return_value = []
    return ledger


@pytest.fixture
def state_machine(mock_session, mock_ledger) -> OrderStateMachine:
    return OrderStateMachine(mock_session, mock_ledger)


def make_order(status: OrderStatus = OrderStatus.PENDING, items=None) -> SimpleNamespace:
    return SimpleNamespace(
        id=1,
        order_number="ORD-20240115-0001",
        status=status,
        items=items or [],
        updated_at=None,
        shipped_at=None,
        delivered_at=None,
        cancelled_at=None,
        tracking_number=None,
    )


# ============================================================================
# Transition table
# ============================================================================


class TestTransitionTable:
    @pytest.mark.parametrize(
        "current,target",
        [
            (OrderStatus.PENDING, OrderStatus.PROCESSING),
            (OrderStatus.PENDING, OrderStatus.CANCELLED),
            (OrderStatus.PROCESSING, OrderStatus.SHIPPED),
            (OrderStatus.PROCESSING, OrderStatus.CANCELLED),
            (OrderStatus.SHIPPED, OrderStatus.DELIVERED),
        ],
    )
    def test_admin_edges(self, current, target):
        assert validate_order_status_transition(current, target, TransitionSource.ADMIN)

    @pytest.mark.parametrize(
        "current,target",
        [
            (OrderStatus.PENDING, OrderStatus.SHIPPED),
            (OrderStatus.SHIPPED, OrderStatus.CANCELLED),
            (OrderStatus.DELIVERED, OrderStatus.CANCELLED),
            (OrderStatus.CANCELLED, OrderStatus.PROCESSING),
            (OrderStatus.PENDING, OrderStatus.REFUNDED),
        ],
    )
    def test_rejected_admin_edges(self, current, target):
        assert not validate_order_status_transition(current, target, TransitionSource.ADMIN)

    @pytest.mark.parametrize(
        "current",
        [
            OrderStatus.PENDING,
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERED,
            OrderStatus.CANCELLED,
        ],
    )
    def test_gateway_can_refund_from_any_unrefunded_state(self, current):
        assert validate_order_status_transition(
            current, OrderStatus.REFUNDED, TransitionSource.PAYMENT_GATEWAY
        )

    def test_refunded_is_terminal_for_every_source(self):
        for source in TransitionSource:
            assert get_allowed_order_transitions(OrderStatus.REFUNDED, source) == frozenset()


# ============================================================================
# transition()
# ============================================================================


class TestTransition:
    async def test_updates_status_and_flushes(self, state_machine, mock_session):
        order = make_order(OrderStatus.PENDING)

        await state_machine.transition(order, OrderStatus.PROCESSING, ADMIN)

        assert order.status == OrderStatus.PROCESSING
        assert order.updated_at is not None
        mock_session.flush.assert_awaited_once()

    async def test_invalid_edge_raises_without_mutation(self, state_machine, mock_session):
        order = make_order(OrderStatus.PENDING)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await state_machine.transition(order, OrderStatus.DELIVERED, ADMIN)

        assert exc_info.value.current_status == "pending"
        assert exc_info.value.target_status == "delivered"
        assert exc_info.value.context["allowed_transitions"] == ["cancelled", "processing"]
        assert order.status == OrderStatus.PENDING
        mock_session.flush.assert_not_awaited()

    async def test_same_status_is_an_error_by_default(self, state_machine):
        order = make_order(OrderStatus.PROCESSING)

        with pytest.raises(InvalidTransitionError):
            await state_machine.transition(order, OrderStatus.PROCESSING, ADMIN)

    async def test_same_status_is_a_no_op_when_idempotent(self, state_machine, mock_session):
        order = make_order(OrderStatus.PROCESSING)

        result = await state_machine.transition(
            order, OrderStatus.PROCESSING, GATEWAY, idempotent=True
        )

        assert result is order
        assert order.updated_at is None
        mock_session.flush.assert_not_awaited()

    async def test_shipping_records_timestamp_and_tracking(self, state_machine):
        order = make_order(OrderStatus.PROCESSING)
        context = TransitionContext(
            source=TransitionSource.ADMIN,
            tracking_number="  1Z999AA10123456784 ",
        )

        await state_machine.transition(order, OrderStatus.SHIPPED, context)

        assert order.shipped_at is not None
        assert order.tracking_number == "1Z999AA10123456784"

    async def test_blank_tracking_number_is_ignored(self, state_machine):
        order = make_order(OrderStatus.PROCESSING)
        context = TransitionContext(source=TransitionSource.ADMIN, tracking_number="   ")

        await state_machine.transition(order, OrderStatus.SHIPPED, context)

        assert order.tracking_number is None

    async def test_delivery_records_timestamp(self, state_machine):
        order = make_order(OrderStatus.SHIPPED)

        await state_machine.transition(order, OrderStatus.DELIVERED, ADMIN)

        assert order.delivered_at is not None

    async def test_cancellation_restores_stock_per_product(self, state_machine, mock_ledger):
        items = [
            SimpleNamespace(product_id=7, quantity=2),
            SimpleNamespace(product_id=3, quantity=1),
            SimpleNamespace(product_id=7, quantity=1),
        ]
        order = make_order(OrderStatus.PENDING, items=items)

        await state_machine.transition(order, OrderStatus.CANCELLED, CUSTOMER)

        mock_ledger.restore_many.assert_awaited_once()
        (quantities,), _ = mock_ledger.restore_many.await_args
        assert dict(quantities) == {7: 3, 3: 1}
        assert order.cancelled_at is not None
        assert order.status == OrderStatus.CANCELLED

    async def test_refund_does_not_restock(self, state_machine, mock_ledger):
        order = make_order(
            OrderStatus.DELIVERED,
            items=[SimpleNamespace(product_id=1, quantity=1)],
        )

        await state_machine.transition(order, OrderStatus.REFUNDED, GATEWAY)

        assert order.status == OrderStatus.REFUNDED
        mock_ledger.restore_many.assert_not_awaited()

    def test_can_transition(self, state_machine):
        order = make_order(OrderStatus.SHIPPED)

        assert state_machine.can_transition(order, OrderStatus.DELIVERED)
        assert not state_machine.can_transition(order, OrderStatus.CANCELLED)
