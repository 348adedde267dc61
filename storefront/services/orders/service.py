"""
Order service: checkout coordination and order lifecycle operations.

``OrderService.create_order`` turns a user's cart into a persisted order in a
single transaction: it reserves a fresh order number, locks and decrements
product stock, prices the lines, attaches the payment record, empties the
cart, applies any payment webhook that arrived ahead of the order and
commits. Any failure rolls the whole transaction back, so a failed
checkout never leaves stock decremented or the cart cleared.

Status changes (admin updates and customer cancellations) are delegated to
``OrderStateMachine`` so every caller gets identical side effects.
"""

from dataclasses import dataclass
from typing import Optional, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import Settings, get_settings
from storefront.core.exceptions import (
    CheckoutPersistenceError,
    EmptyCartError,
    OrderAccessDeniedError,
    OrderNotFoundError,
    PaymentNotConfirmedError,
    PersistenceFailure,
    ProductNotFoundError,
)
from storefront.core.logging import get_logger, log_performance
from storefront.core.security import Principal
from storefront.database.base import utc_now
from storefront.database.models.order import Order, OrderItem, OrderStatus
from storefront.database.models.payment import Payment, PaymentStatus
from storefront.services.cart.repository import CartRepository
from storefront.services.cart.snapshot import CartSnapshot
from storefront.services.inventory.ledger import InventoryLedger
from storefront.services.notifications.dispatcher import NotificationDispatcher
from storefront.services.orders.enums import TransitionSource
from storefront.services.orders.pricing import calculate_totals
from storefront.services.orders.repository import OrderRepository, order_number_prefix
from storefront.services.orders.state_machine import OrderStateMachine, TransitionContext
from storefront.services.payments.stripe_client import StripeGateway
from storefront.services.payments.webhook import PAYMENT_SUCCEEDED, ReconcileOutcome

logger = get_logger(__name__)


@dataclass(frozen=True)
class ShippingAddress:
    street: str
    city: str
    province: str
    postal_code: str
    country: str


def is_order_number_conflict(error: IntegrityError) -> bool:
    """True if ``error`` is a unique violation on ``orders.order_number``."""
    return "order_number" in str(error.orig)


class OrderService:
    """
    Order service orchestrating checkout and order lifecycle.

    Attributes:
        session: Async database session; the service owns commit/rollback
        repository: Order data access
        carts: Cart data access
        ledger: Product stock mutations
        state_machine: Status transition rules and side effects
        gateway: Optional payment gateway, used when checkout must confirm
            the payment intent before placing the order
        dispatcher: Optional email dispatcher for the order confirmation
            sent when checkout finds the payment already succeeded
    """

    def __init__(
        self,
        session: AsyncSession,
        gateway: Optional[StripeGateway] = None,
        settings: Optional[Settings] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.repository = OrderRepository(session)
        self.carts = CartRepository(session)
        self.ledger = InventoryLedger(session)
        self.state_machine = OrderStateMachine(session, self.ledger)
        self.gateway = gateway
        self.dispatcher = dispatcher

    # Checkout

    async def create_order(
        self,
        user_id: str,
        shipping_address: ShippingAddress,
        notes: Optional[str],
        payment_intent_id: str,
        user_email: Optional[str] = None,
    ) -> Order:
        """
        Convert the user's cart into an order.

        Args:
            user_id: Buyer
            shipping_address: Destination, copied onto the order
            notes: Optional customer notes
            payment_intent_id: Gateway payment intent the customer confirmed
            user_email: Address for the confirmation email when the payment
                succeeded before checkout

        Returns:
            The committed order with items and payment

        Raises:
            EmptyCartError: If the user has no cart or it has no items
            ProductNotFoundError: If a cart product no longer exists
            InsufficientStockError: If any line exceeds available stock
            PaymentNotConfirmedError: If payment verification is enabled and
                the intent has not succeeded
            CheckoutPersistenceError: If the database write fails
        """
        if self.settings.verify_payment_on_checkout and self.gateway is not None:
            if not await self.gateway.confirm(payment_intent_id):
                raise PaymentNotConfirmedError(payment_intent_id)

        max_attempts = self.settings.checkout_max_attempts

        with log_performance(logger, "checkout", user_id=user_id):
            for attempt in range(1, max_attempts + 1):
                try:
                    order = await self._place_order(
                        user_id, shipping_address, notes, payment_intent_id
                    )
                    await self.session.commit()
                except IntegrityError as e:
                    await self.session.rollback()
                    if is_order_number_conflict(e) and attempt < max_attempts:
                        logger.warning(
                            "Order number taken by concurrent checkout, retrying",
                            user_id=user_id,
                            attempt=attempt,
                        )
                        continue
                    logger.error("Checkout integrity failure", user_id=user_id, error=str(e.orig))
                    raise CheckoutPersistenceError(
                        "Failed to create order",
                        user_id=user_id,
                    ) from e
                except SQLAlchemyError as e:
                    await self.session.rollback()
                    logger.error(
                        "Checkout database failure",
                        user_id=user_id,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    raise CheckoutPersistenceError(
                        "Failed to create order",
                        user_id=user_id,
                    ) from e
                except Exception:
                    await self.session.rollback()
                    raise

                logger.info(
                    "Order created",
                    order_id=order.id,
                    order_number=order.order_number,
                    user_id=user_id,
                    total=str(order.total_amount),
                    item_count=len(order.items),
                )
                if order.status == OrderStatus.PROCESSING:
                    await self._send_confirmation(order, user_email)
                return order

        raise CheckoutPersistenceError("Failed to create order", user_id=user_id)

    async def _place_order(
        self,
        user_id: str,
        shipping_address: ShippingAddress,
        notes: Optional[str],
        payment_intent_id: str,
    ) -> Order:
        cart = await self.carts.get_cart(user_id, refresh=True)
        if cart is None or cart.is_empty:
            raise EmptyCartError(user_id)
        snapshot = CartSnapshot.from_cart(cart)

        now = utc_now()
        order_number = await self.repository.next_order_number(
            order_number_prefix(now.date())
        )

        products = await self.ledger.lock_products(snapshot.product_ids)
        items = []
        for line in snapshot.lines:
            product = products.get(line.product_id)
            if product is None:
                raise ProductNotFoundError(line.product_id)
            self.ledger.take_locked(product, line.quantity)
            items.append(
                OrderItem(
                    product_id=product.id,
                    product_name=product.name,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    discount=line.discount,
                )
            )

        totals = calculate_totals(
            items,
            tax_rate=self.settings.tax_rate,
            shipping=self.settings.flat_shipping,
        )

        order = Order(
            order_number=order_number,
            user_id=user_id,
            status=OrderStatus.PENDING,
            subtotal=totals.subtotal,
            tax_amount=totals.tax,
            shipping_amount=totals.shipping,
            total_amount=totals.total,
            shipping_street=shipping_address.street,
            shipping_city=shipping_address.city,
            shipping_province=shipping_address.province,
            shipping_postal_code=shipping_address.postal_code,
            shipping_country=shipping_address.country,
            notes=notes,
            created_at=now,
            updated_at=now,
            items=items,
            payment=Payment(
                payment_intent_id=payment_intent_id,
                amount=totals.total,
                currency=self.settings.payment_currency,
                status=PaymentStatus.COMPLETED,
                payment_method=self.settings.payment_method_label,
                created_at=now,
                completed_at=now,
            ),
        )

        await self.repository.save(order)
        await self.carts.clear_cart(snapshot.cart_id)
        await self._apply_early_payment_events(order, payment_intent_id)
        return order

    async def _apply_early_payment_events(self, order: Order, payment_intent_id: str) -> None:
        """
        Apply succeeded-payment webhooks that arrived before this order.

        The reconciler parks such events as deferred because it could not
        find the order yet. They are settled in the checkout transaction so
        the order starts in Processing and the events become processed.
        """
        events = await self.repository.deferred_payment_events(
            payment_intent_id, PAYMENT_SUCCEEDED
        )
        if not events:
            return

        first = events[0]
        await self.state_machine.transition(
            order,
            OrderStatus.PROCESSING,
            TransitionContext(
                source=TransitionSource.PAYMENT_GATEWAY,
                actor_id=first.event_id,
                reason=first.event_type,
            ),
        )
        now = utc_now()
        for event in events:
            outcome = ReconcileOutcome.APPLIED if event is first else ReconcileOutcome.UNCHANGED
            event.order_id = order.id
            event.outcome = outcome.value
            event.processed_at = now
        await self.session.flush()

        logger.info(
            "Applied payment events received before checkout",
            order_number=order.order_number,
            payment_intent_id=payment_intent_id,
            event_ids=[event.event_id for event in events],
        )

    async def _send_confirmation(self, order: Order, email: Optional[str]) -> None:
        if self.dispatcher is None or not email:
            return
        await self.dispatcher.send_order_confirmation(
            email, order.order_number, order.total_amount
        )

    # Queries

    async def get_order(self, order_id: int, principal: Principal) -> Order:
        """
        Fetch an order visible to ``principal``.

        Raises:
            OrderNotFoundError: If no such order exists
            OrderAccessDeniedError: If the caller neither owns it nor is admin
        """
        order = await self.repository.get_by_id(order_id)
        if order is None:
            raise OrderNotFoundError(order_id=order_id)
        self._ensure_can_view(order, principal)
        return order

    async def get_order_by_number(self, order_number: str, principal: Principal) -> Order:
        order = await self.repository.get_by_order_number(order_number)
        if order is None:
            raise OrderNotFoundError(order_number=order_number)
        self._ensure_can_view(order, principal)
        return order

    async def list_orders(self, user_id: str) -> Sequence[Order]:
        return await self.repository.list_by_user(user_id)

    async def list_all_orders(
        self,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Sequence[Order]:
        return await self.repository.list_all(status=status, skip=skip, limit=limit)

    # Status changes

    async def update_status(
        self,
        order_id: int,
        status: OrderStatus,
        tracking_number: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> Order:
        """
        Administrative status change.

        Args:
            order_id: Order to update
            status: Target status
            tracking_number: Carrier tracking number, stored when shipping
            actor_id: Administrator performing the change

        Raises:
            OrderNotFoundError: If the order does not exist
            InvalidTransitionError: If the change is not allowed
        """
        context = TransitionContext(
            source=TransitionSource.ADMIN,
            actor_id=actor_id,
            tracking_number=tracking_number,
        )
        return await self._apply_transition(order_id, status, context)

    async def cancel_order(self, order_id: int, user_id: str) -> Order:
        """
        Customer cancellation of their own order.

        Restores stock for every line. Only pending and processing orders
        can be cancelled.

        Raises:
            OrderNotFoundError: If the order does not exist
            OrderAccessDeniedError: If ``user_id`` does not own the order
            InvalidTransitionError: If the order can no longer be cancelled
        """
        context = TransitionContext(
            source=TransitionSource.CUSTOMER,
            actor_id=user_id,
            reason="cancelled_by_customer",
        )
        return await self._apply_transition(
            order_id, OrderStatus.CANCELLED, context, owner_id=user_id
        )

    async def _apply_transition(
        self,
        order_id: int,
        status: OrderStatus,
        context: TransitionContext,
        owner_id: Optional[str] = None,
    ) -> Order:
        try:
            order = await self.repository.get_by_id(order_id, for_update=True)
            if order is None:
                raise OrderNotFoundError(order_id=order_id)
            if owner_id is not None and not order.is_owned_by(owner_id):
                raise OrderAccessDeniedError(order_id, owner_id)

            await self.state_machine.transition(order, status, context)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                "Order status update failed",
                order_id=order_id,
                target_status=status.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise PersistenceFailure("Failed to update order", order_id=order_id) from e
        except Exception:
            await self.session.rollback()
            raise

        return order

    @staticmethod
    def _ensure_can_view(order: Order, principal: Principal) -> None:
        if not principal.is_admin and not order.is_owned_by(principal.user_id):
            raise OrderAccessDeniedError(order.id, principal.user_id)
