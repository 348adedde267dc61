"""
Payment service orchestrating Stripe integration and business logic.

This module implements the PaymentService class for the payment operations
exposed over HTTP: creating payment intents for a cart or an existing order,
checking whether an intent has succeeded, and issuing refunds. Order and
payment status changes caused by the gateway are not made here; they arrive
asynchronously as webhook events and are applied by the reconciler.
"""

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import Settings, get_settings
from storefront.core.exceptions import (
    EmptyCartError,
    InvalidAmountError,
    OrderAccessDeniedError,
    OrderNotFoundError,
    PaymentGatewayError,
)
from storefront.core.logging import get_logger
from storefront.core.security import Principal
from storefront.database.models.order import OrderStatus
from storefront.services.cart.repository import CartRepository
from storefront.services.cart.snapshot import CartSnapshot
from storefront.services.orders.pricing import calculate_totals
from storefront.services.orders.repository import OrderRepository
from storefront.services.payments.stripe_client import (
    PaymentIntentResult,
    RefundResult,
    StripeGateway,
)
from storefront.services.payments.webhook import (
    METADATA_ORDER_ID,
    METADATA_ORDER_NUMBER,
    METADATA_USER_EMAIL,
)

logger = get_logger(__name__)

REFUND_REASON = "requested_by_customer"


@dataclass(frozen=True)
class CheckoutIntent:
    """Payment intent created for a cart, plus the totals it was priced at."""

    intent: PaymentIntentResult
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal


class PaymentService:
    """
    Payment service orchestrating Stripe integration and business logic.

    Attributes:
        session: Async database session (read-only use)
        gateway: Stripe gateway client
        settings: Application settings (currency, tax rate, shipping)
    """

    def __init__(
        self,
        session: AsyncSession,
        gateway: StripeGateway,
        settings: Optional[Settings] = None,
    ):
        self.session = session
        self.gateway = gateway
        self.settings = settings or get_settings()
        self.orders = OrderRepository(session)
        self.carts = CartRepository(session)

    async def create_checkout_intent(self, principal: Principal) -> CheckoutIntent:
        """
        Create a payment intent for the caller's current cart.

        The amount is priced exactly as checkout will price it, so the
        client can confirm the intent and then place the order with it.

        Args:
            principal: Authenticated buyer

        Returns:
            CheckoutIntent with the client secret and the priced totals

        Raises:
            EmptyCartError: If the caller has nothing in their cart
            PaymentGatewayError: If Stripe rejects the request
        """
        cart = await self.carts.get_cart(principal.user_id)
        if cart is None or cart.is_empty:
            raise EmptyCartError(principal.user_id)

        totals = calculate_totals(
            CartSnapshot.from_cart(cart).lines,
            tax_rate=self.settings.tax_rate,
            shipping=self.settings.flat_shipping,
        )
        metadata = {"user_id": principal.user_id}
        if principal.email:
            metadata[METADATA_USER_EMAIL] = principal.email

        intent = await self.gateway.create_intent(
            totals.total,
            self.settings.payment_currency,
            metadata,
            idempotency_key=f"cart_{cart.id}_{uuid.uuid4()}",
        )

        logger.info(
            "Checkout payment intent created",
            user_id=principal.user_id,
            cart_id=cart.id,
            payment_intent_id=intent.payment_intent_id,
            total=str(totals.total),
        )
        return CheckoutIntent(
            intent=intent,
            subtotal=totals.subtotal,
            tax=totals.tax,
            shipping=totals.shipping,
            total=totals.total,
        )

    async def create_payment_intent(self, order_id: int, principal: Principal) -> PaymentIntentResult:
        """
        Create a payment intent for an existing order.

        Args:
            order_id: Order to pay for
            principal: Caller; must own the order

        Returns:
            PaymentIntentResult carrying the client secret

        Raises:
            OrderNotFoundError: If the order does not exist
            OrderAccessDeniedError: If the caller does not own the order
            InvalidAmountError: If the order is no longer payable
            PaymentGatewayError: If Stripe rejects the request
        """
        order = await self.orders.get_by_id(order_id)
        if order is None:
            raise OrderNotFoundError(order_id=order_id)
        if not order.is_owned_by(principal.user_id):
            raise OrderAccessDeniedError(order_id, principal.user_id)
        if order.status not in (OrderStatus.PENDING, OrderStatus.PROCESSING):
            raise InvalidAmountError(
                "Order is not awaiting payment",
                amount=order.total_amount,
                order_id=order_id,
                status=order.status.value,
            )

        metadata = {
            METADATA_ORDER_ID: str(order.id),
            METADATA_ORDER_NUMBER: order.order_number,
        }
        if principal.email:
            metadata[METADATA_USER_EMAIL] = principal.email

        # Same order, same intent when the client retries
        return await self.gateway.create_intent(
            order.total_amount,
            self.settings.payment_currency,
            metadata,
            idempotency_key=f"order_{order.id}_intent",
        )

    async def confirm_payment(self, payment_intent_id: str) -> bool:
        return await self.gateway.confirm(payment_intent_id)

    async def refund_payment(self, order_id: int, amount: Optional[Decimal] = None) -> RefundResult:
        """
        Refund an order's payment in full or in part.

        The order moves to refunded when the gateway delivers the matching
        ``charge.refunded`` webhook, not here.

        Args:
            order_id: Order whose payment is refunded
            amount: Partial amount; full refund when omitted

        Returns:
            RefundResult reported by the gateway

        Raises:
            OrderNotFoundError: If the order or its payment does not exist
            InvalidAmountError: If the amount exceeds the charged amount or
                the order is already refunded
            PaymentGatewayError: If Stripe rejects the refund
        """
        order = await self.orders.get_by_id(order_id)
        if order is None or order.payment is None:
            raise OrderNotFoundError(order_id=order_id)

        payment = order.payment
        if order.status == OrderStatus.REFUNDED:
            raise InvalidAmountError("Order has already been refunded", order_id=order_id)
        if amount is not None and amount > payment.amount:
            raise InvalidAmountError(
                "Refund amount exceeds payment amount",
                amount=amount,
                order_id=order_id,
                payment_amount=str(payment.amount),
            )

        result = await self.gateway.refund(
            payment.payment_intent_id,
            amount=amount,
            reason=REFUND_REASON,
        )
        if not result.succeeded:
            raise PaymentGatewayError(
                "Refund was not accepted by the payment provider",
                code="REFUND_FAILED",
                order_id=order_id,
                refund_status=result.status,
            )

        logger.info(
            "Refund requested",
            order_id=order_id,
            order_number=order.order_number,
            refund_id=result.refund_id,
            amount=str(result.amount),
        )
        return result
