"""
Payment event reconciliation for Stripe webhooks.

The gateway delivers events at least once and expects a 2xx response once
an event has been accepted. ``PaymentEventReconciler.handle`` therefore
raises only when the signature cannot be verified; every other problem
(unknown order, illegal transition, database error) is logged and the event
is acknowledged so the gateway stops redelivering it.

Each applied event id is written to ``processed_webhook_events`` in the same
transaction as the order change, so a redelivered event is recognised and
skipped without touching the order or sending a second email.

A ``payment_intent.succeeded`` event usually reaches the webhook before the
checkout that created its order has committed. Such an event is stored as
``deferred`` rather than processed: checkout applies it when the order is
placed, and a redelivery tries the order lookup again.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.exceptions import InvalidTransitionError, StorefrontError
from storefront.core.logging import get_logger, log_performance
from storefront.database.models.order import Order
from storefront.database.models.payment import PaymentStatus
from storefront.database.models.webhook_event import OUTCOME_DEFERRED, ProcessedWebhookEvent
from storefront.database.base import utc_now
from storefront.services.notifications.dispatcher import NotificationDispatcher
from storefront.services.orders.enums import OrderStatus, TransitionSource
from storefront.services.orders.repository import OrderRepository
from storefront.services.orders.state_machine import OrderStateMachine, TransitionContext
from storefront.services.payments.stripe_client import (
    GatewayEvent,
    StripeGateway,
    from_minor_units,
)

logger = get_logger(__name__)

PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"
CHARGE_REFUNDED = "charge.refunded"

EVENT_TARGET_STATUS = {
    PAYMENT_SUCCEEDED: OrderStatus.PROCESSING,
    PAYMENT_FAILED: OrderStatus.CANCELLED,
    CHARGE_REFUNDED: OrderStatus.REFUNDED,
}

METADATA_ORDER_ID = "order_id"
METADATA_USER_EMAIL = "user_email"
METADATA_ORDER_NUMBER = "order_number"


class ReconcileOutcome(str, Enum):
    APPLIED = "applied"
    UNCHANGED = "unchanged"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    DROPPED = "dropped"
    DEFERRED = OUTCOME_DEFERRED
    FAILED = "failed"


@dataclass(frozen=True)
class ReconcileResult:
    event_id: str
    event_type: str
    outcome: ReconcileOutcome
    order_id: Optional[int] = None


@dataclass(frozen=True)
class _Notification:
    kind: str
    email: str
    order_number: str
    amount: Decimal


class PaymentEventReconciler:
    """
    Applies verified gateway events to orders and payments.

    Args:
        session: Async database session; the reconciler commits per event
        gateway: Used to verify webhook signatures
        dispatcher: Sends confirmation emails after commit
    """

    def __init__(
        self,
        session: AsyncSession,
        gateway: StripeGateway,
        dispatcher: NotificationDispatcher,
    ):
        self.session = session
        self.gateway = gateway
        self.dispatcher = dispatcher
        self.orders = OrderRepository(session)
        self.state_machine = OrderStateMachine(session)

    async def handle(self, payload: bytes, signature: Optional[str]) -> ReconcileResult:
        """
        Verify and reconcile one webhook delivery.

        Args:
            payload: Raw request body
            signature: ``Stripe-Signature`` header value

        Returns:
            What happened to the event

        Raises:
            WebhookSignatureError: If the signature or signed payload is
                invalid; nothing has been read from or written to the database
        """
        event = self.gateway.verify_webhook_signature(payload, signature)
        logger.info(
            "Stripe webhook received",
            event_id=event.event_id,
            event_type=event.event_type,
        )
        with log_performance(logger, "reconcile_webhook", event_type=event.event_type):
            return await self.reconcile(event)

    async def reconcile(self, event: GatewayEvent) -> ReconcileResult:
        """Apply a verified event. Never raises for per-event failures."""
        result = await self._reconcile(event)
        if result.outcome is ReconcileOutcome.DEFERRED:
            # Checkout may have committed between the lookup and the deferral
            result = await self._reconcile(event)
        return result

    async def _reconcile(self, event: GatewayEvent) -> ReconcileResult:
        notification: Optional[_Notification] = None
        order_id: Optional[int] = None
        try:
            recorded = await self.session.get(
                ProcessedWebhookEvent, event.event_id, populate_existing=True
            )
            if recorded is not None and not recorded.is_deferred:
                logger.info("Duplicate webhook event skipped", event_id=event.event_id)
                return self._result(event, ReconcileOutcome.DUPLICATE)

            target_status = EVENT_TARGET_STATUS.get(event.event_type)
            if target_status is None:
                logger.info(
                    "Unhandled webhook event type",
                    event_id=event.event_id,
                    event_type=event.event_type,
                )
                return await self._record_only(event, ReconcileOutcome.IGNORED)

            order = await self._find_order(event)
            if order is None:
                if self._awaits_checkout(event):
                    return await self._defer(event, recorded)
                return await self._record_only(event, ReconcileOutcome.DROPPED)

            order_id = order.id
            previous_status = order.status
            await self.state_machine.transition(
                order,
                target_status,
                TransitionContext(
                    source=TransitionSource.PAYMENT_GATEWAY,
                    actor_id=event.event_id,
                    reason=event.event_type,
                ),
                idempotent=True,
            )
            changed = order.status != previous_status
            self._update_payment(order, event)
            if changed:
                notification = self._build_notification(order, event)

            outcome = ReconcileOutcome.APPLIED if changed else ReconcileOutcome.UNCHANGED
            if recorded is None:
                self.session.add(
                    ProcessedWebhookEvent(
                        event_id=event.event_id,
                        event_type=event.event_type,
                        order_id=order_id,
                        payment_intent_id=event.payment_intent_id,
                        outcome=outcome.value,
                    )
                )
            else:
                recorded.order_id = order_id
                recorded.outcome = outcome.value
                recorded.processed_at = utc_now()
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            logger.info("Webhook event recorded concurrently", event_id=event.event_id)
            return self._result(event, ReconcileOutcome.DUPLICATE, order_id)
        except InvalidTransitionError as e:
            await self.session.rollback()
            logger.warning(
                "Webhook event does not apply to order state",
                event_id=event.event_id,
                event_type=event.event_type,
                order_id=order_id,
                current_status=e.current_status,
                target_status=e.target_status,
            )
            return self._result(event, ReconcileOutcome.FAILED, order_id)
        except Exception as e:
            await self.session.rollback()
            logger.error(
                "Failed to reconcile webhook event",
                event_id=event.event_id,
                event_type=event.event_type,
                order_id=order_id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=not isinstance(e, StorefrontError),
            )
            return self._result(event, ReconcileOutcome.FAILED, order_id)

        logger.info(
            "Webhook event reconciled",
            event_id=event.event_id,
            event_type=event.event_type,
            order_id=order_id,
            outcome=outcome.value,
        )

        if notification is not None:
            await self._notify(notification)

        return self._result(event, outcome, order_id)

    async def _find_order(self, event: GatewayEvent) -> Optional[Order]:
        """
        Resolve the order an event refers to.

        The ``order_id`` metadata value wins when present. Events without it
        fall back to the payment intent id recorded at checkout. A metadata
        value that is not an integer drops the event.
        """
        raw_order_id = event.metadata.get(METADATA_ORDER_ID)
        if raw_order_id is not None:
            try:
                order_id = int(raw_order_id)
            except ValueError:
                logger.warning(
                    "Webhook metadata carries an invalid order id",
                    event_id=event.event_id,
                    order_id=raw_order_id,
                )
                return None
            order = await self.orders.get_by_id(order_id, for_update=True)
        elif event.payment_intent_id:
            order = await self.orders.get_by_payment_intent(event.payment_intent_id, for_update=True)
        else:
            order = None

        if order is None:
            logger.warning(
                "Webhook event does not reference a known order",
                event_id=event.event_id,
                order_id=raw_order_id,
                payment_intent_id=event.payment_intent_id,
            )
        return order

    @staticmethod
    def _awaits_checkout(event: GatewayEvent) -> bool:
        """A cart payment succeeded but its order is not visible yet."""
        return (
            event.event_type == PAYMENT_SUCCEEDED
            and event.metadata.get(METADATA_ORDER_ID) is None
            and bool(event.payment_intent_id)
        )

    async def _defer(
        self, event: GatewayEvent, recorded: Optional[ProcessedWebhookEvent]
    ) -> ReconcileResult:
        if recorded is None:
            self.session.add(
                ProcessedWebhookEvent(
                    event_id=event.event_id,
                    event_type=event.event_type,
                    payment_intent_id=event.payment_intent_id,
                    outcome=ReconcileOutcome.DEFERRED.value,
                )
            )
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            return self._result(event, ReconcileOutcome.DUPLICATE)

        logger.info(
            "Webhook event deferred until checkout completes",
            event_id=event.event_id,
            payment_intent_id=event.payment_intent_id,
        )
        return self._result(event, ReconcileOutcome.DEFERRED)

    def _update_payment(self, order: Order, event: GatewayEvent) -> None:
        payment = order.payment
        if payment is None:
            return

        if event.event_type == PAYMENT_SUCCEEDED:
            payment.status = PaymentStatus.COMPLETED
            if payment.completed_at is None:
                payment.completed_at = utc_now()
        elif event.event_type == PAYMENT_FAILED:
            payment.status = PaymentStatus.FAILED
            payment.failure_reason = event.failure_message
        elif event.event_type == CHARGE_REFUNDED:
            payment.status = PaymentStatus.REFUNDED
            payment.refunded_amount = from_minor_units(event.amount_refunded)

    def _build_notification(self, order: Order, event: GatewayEvent) -> Optional[_Notification]:
        email = event.metadata.get(METADATA_USER_EMAIL)
        if not email:
            return None
        order_number = order.order_number or event.metadata.get(METADATA_ORDER_NUMBER, "")

        if event.event_type == PAYMENT_SUCCEEDED:
            return _Notification("order_confirmation", email, order_number, order.total_amount)
        if event.event_type == CHARGE_REFUNDED and event.amount_refunded is not None:
            return _Notification(
                "refund_confirmation",
                email,
                order_number,
                from_minor_units(event.amount_refunded),
            )
        return None

    async def _notify(self, notification: _Notification) -> None:
        if notification.kind == "order_confirmation":
            await self.dispatcher.send_order_confirmation(
                notification.email, notification.order_number, notification.amount
            )
        else:
            await self.dispatcher.send_refund_confirmation(
                notification.email, notification.order_number, notification.amount
            )

    async def _record_only(self, event: GatewayEvent, outcome: ReconcileOutcome) -> ReconcileResult:
        try:
            self.session.add(
                ProcessedWebhookEvent(
                    event_id=event.event_id,
                    event_type=event.event_type,
                    payment_intent_id=event.payment_intent_id,
                    outcome=outcome.value,
                )
            )
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            return self._result(event, ReconcileOutcome.DUPLICATE)
        return self._result(event, outcome)

    @staticmethod
    def _result(
        event: GatewayEvent,
        outcome: ReconcileOutcome,
        order_id: Optional[int] = None,
    ) -> ReconcileResult:
        return ReconcileResult(
            event_id=event.event_id,
            event_type=event.event_type,
            outcome=outcome,
            order_id=order_id,
        )
