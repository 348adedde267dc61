"""
Stripe API client wrapper with error handling and retry logic.

``StripeGateway`` owns one explicitly configured ``stripe.StripeClient``; the
module never touches the SDK's global ``stripe.api_key``. The SDK is
synchronous, so every call runs in a worker thread and transient failures
(connection errors, rate limits, 5xx) are retried with exponential backoff.
Gateway responses are converted into small typed dataclasses at this
boundary so that the rest of the application never reads untyped SDK
objects.
"""

import asyncio
import json
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Mapping, Optional, TypeVar

import stripe

from storefront.core.config import Settings, get_settings
from storefront.core.exceptions import (
    InvalidAmountError,
    PaymentGatewayError,
    WebhookSignatureError,
)
from storefront.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

REFUNDABLE_STATUSES = frozenset({"succeeded", "pending"})
RETRYABLE_ERRORS = (stripe.APIConnectionError, stripe.RateLimitError, stripe.APIError)


def to_minor_units(amount: Decimal) -> int:
    """Convert a decimal amount to the gateway's integer minor units."""
    if amount <= 0:
        raise InvalidAmountError("Amount must be positive", amount=amount)
    return int((amount * 100).quantize(Decimal("1")))


def from_minor_units(amount: Optional[int]) -> Optional[Decimal]:
    if amount is None:
        return None
    return (Decimal(amount) / Decimal(100)).quantize(Decimal("0.01"))


@dataclass(frozen=True)
class PaymentIntentResult:
    payment_intent_id: str
    client_secret: str
    status: str
    amount: Decimal
    currency: str


@dataclass(frozen=True)
class PaymentDetails:
    """Snapshot of a payment intent as reported by the gateway."""

    payment_intent_id: str
    status: str
    amount: Decimal
    currency: str
    amount_received: Optional[Decimal] = None
    payment_method: Optional[str] = None
    latest_charge: Optional[str] = None
    failure_message: Optional[str] = None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class RefundResult:
    refund_id: str
    status: str
    amount: Decimal

    @property
    def succeeded(self) -> bool:
        return self.status in REFUNDABLE_STATUSES


@dataclass(frozen=True)
class GatewayEvent:
    """
    Verified webhook event.

    Attributes:
        event_id: Gateway event id, unique per delivery subject
        event_type: e.g. ``payment_intent.succeeded``
        object_id: Id of the payment intent or charge the event is about
        metadata: String metadata attached to that object
        amount_refunded: Refunded amount in minor units (charges only)
        failure_message: Last payment error message (failed intents only)
        payment_intent_id: Owning payment intent for charge events
    """

    event_id: str
    event_type: str
    object_id: Optional[str]
    metadata: dict[str, str] = field(default_factory=dict)
    amount_refunded: Optional[int] = None
    failure_message: Optional[str] = None
    payment_intent_id: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "GatewayEvent":
        data_object = (payload.get("data") or {}).get("object") or {}
        last_error = data_object.get("last_payment_error") or {}
        payment_intent = data_object.get("payment_intent")
        if data_object.get("object") == "payment_intent":
            payment_intent = data_object.get("id")

        return cls(
            event_id=payload["id"],
            event_type=payload["type"],
            object_id=data_object.get("id"),
            metadata={str(k): str(v) for k, v in (data_object.get("metadata") or {}).items()},
            amount_refunded=data_object.get("amount_refunded"),
            failure_message=last_error.get("message"),
            payment_intent_id=payment_intent,
        )


class StripeGateway:
    """
    Payment gateway client backed by Stripe.

    Args:
        client: Preconfigured Stripe client; built from settings if omitted
        settings: Application settings (API key, webhook tolerance, retries)
        initial_backoff: Delay before the first retry, in seconds
        max_backoff: Upper bound for a single retry delay
    """

    def __init__(
        self,
        client: Optional[stripe.StripeClient] = None,
        settings: Optional[Settings] = None,
        initial_backoff: float = 0.5,
        max_backoff: float = 8.0,
    ):
        self.settings = settings or get_settings()
        self.client = client or stripe.StripeClient(
            self.settings.stripe_secret_key,
            max_network_retries=0,
        )
        self.max_retries = self.settings.stripe_max_retries
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff

    def _calculate_backoff(self, attempt: int) -> float:
        return min(self.initial_backoff * (2**attempt), self.max_backoff)

    async def _call(self, operation: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """
        Run a blocking SDK call in a thread, retrying transient failures.

        Raises:
            PaymentGatewayError: On a non-retryable error or once retries
                are exhausted
        """
        for attempt in range(self.max_retries):
            try:
                return await asyncio.to_thread(func, *args, **kwargs)
            except RETRYABLE_ERRORS as e:
                if attempt + 1 >= self.max_retries:
                    logger.error(
                        "Stripe operation failed after retries",
                        operation=operation,
                        attempts=attempt + 1,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    raise PaymentGatewayError(
                        "Payment provider is unavailable",
                        operation=operation,
                        stripe_code=getattr(e, "code", None),
                    ) from e

                backoff = self._calculate_backoff(attempt)
                logger.warning(
                    "Transient Stripe error, retrying",
                    operation=operation,
                    attempt=attempt + 1,
                    backoff_seconds=backoff,
                    error_type=type(e).__name__,
                )
                await asyncio.sleep(backoff)
            except stripe.CardError as e:
                logger.warning(
                    "Stripe card error",
                    operation=operation,
                    code=e.code,
                    decline_code=getattr(e, "decline_code", None),
                )
                raise PaymentGatewayError(
                    e.user_message or "Card was declined",
                    code="CARD_DECLINED",
                    operation=operation,
                    stripe_code=e.code,
                ) from e
            except stripe.StripeError as e:
                logger.error(
                    "Stripe operation failed",
                    operation=operation,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise PaymentGatewayError(
                    e.user_message or "Payment provider rejected the request",
                    operation=operation,
                    stripe_code=getattr(e, "code", None),
                ) from e

        raise PaymentGatewayError("Payment provider is unavailable", operation=operation)

    async def create_intent(
        self,
        amount: Decimal,
        currency: str,
        metadata: Mapping[str, str],
        idempotency_key: Optional[str] = None,
    ) -> PaymentIntentResult:
        """
        Create a payment intent.

        Args:
            amount: Amount in major units (e.g. dollars)
            currency: ISO currency code
            metadata: String metadata echoed back on webhook events
            idempotency_key: Optional key so a retried request reuses the intent

        Returns:
            PaymentIntentResult carrying the client secret
        """
        params = {
            "amount": to_minor_units(amount),
            "currency": currency.lower(),
            "metadata": dict(metadata),
            "automatic_payment_methods": {"enabled": True},
            "description": f"Order payment - {metadata.get('order_number', 'N/A')}",
        }
        request: dict[str, Any] = {"params": params}
        if idempotency_key:
            request["options"] = {"idempotency_key": idempotency_key}

        intent = await self._call(
            "create_payment_intent",
            self.client.payment_intents.create,
            **request,
        )

        logger.info(
            "Payment intent created",
            payment_intent_id=intent.id,
            amount=str(amount),
            currency=currency,
            order_id=metadata.get("order_id"),
        )
        return PaymentIntentResult(
            payment_intent_id=intent.id,
            client_secret=intent.client_secret,
            status=intent.status,
            amount=from_minor_units(intent.amount),
            currency=intent.currency,
        )

    async def get_payment_details(self, payment_intent_id: str) -> PaymentDetails:
        intent = await self._call(
            "retrieve_payment_intent",
            self.client.payment_intents.retrieve,
            payment_intent_id,
        )
        last_error = intent.get("last_payment_error") or {}
        return PaymentDetails(
            payment_intent_id=intent.id,
            status=intent.status,
            amount=from_minor_units(intent.amount),
            currency=intent.currency,
            amount_received=from_minor_units(intent.get("amount_received")),
            payment_method=intent.get("payment_method"),
            latest_charge=intent.get("latest_charge"),
            failure_message=last_error.get("message"),
            metadata=dict(intent.get("metadata") or {}),
        )

    async def confirm(self, payment_intent_id: str) -> bool:
        """Return True if the payment intent has succeeded."""
        details = await self.get_payment_details(payment_intent_id)
        confirmed = details.status == "succeeded"
        logger.info(
            "Payment intent checked",
            payment_intent_id=payment_intent_id,
            status=details.status,
            confirmed=confirmed,
        )
        return confirmed

    async def refund(
        self,
        payment_intent_id: str,
        amount: Optional[Decimal] = None,
        reason: str = "requested_by_customer",
    ) -> RefundResult:
        """
        Refund a payment intent in full or in part.

        Args:
            payment_intent_id: Intent to refund
            amount: Partial amount in major units; full refund when omitted
            reason: Stripe refund reason code
        """
        params: dict[str, Any] = {"payment_intent": payment_intent_id, "reason": reason}
        if amount is not None:
            params["amount"] = to_minor_units(amount)

        refund = await self._call("create_refund", self.client.refunds.create, params=params)

        logger.info(
            "Refund created",
            payment_intent_id=payment_intent_id,
            refund_id=refund.id,
            status=refund.status,
        )
        return RefundResult(
            refund_id=refund.id,
            status=refund.status,
            amount=from_minor_units(refund.amount),
        )

    async def cancel_intent(self, payment_intent_id: str) -> bool:
        intent = await self._call(
            "cancel_payment_intent",
            self.client.payment_intents.cancel,
            payment_intent_id,
        )
        return intent.status == "canceled"

    def verify_webhook_signature(
        self,
        payload: bytes,
        signature: Optional[str],
        secret: Optional[str] = None,
    ) -> GatewayEvent:
        """
        Verify a webhook signature and parse the event.

        Args:
            payload: Raw request body exactly as received
            signature: Value of the ``Stripe-Signature`` header
            secret: Endpoint signing secret; defaults to settings

        Returns:
            Parsed GatewayEvent

        Raises:
            WebhookSignatureError: If the header is missing or does not match,
                or the signed payload is not a valid event
            PaymentGatewayError: If no signing secret is configured
        """
        secret = secret or self.settings.stripe_webhook_secret
        if not secret:
            raise PaymentGatewayError(
                "Webhook signing secret is not configured",
                code="WEBHOOK_NOT_CONFIGURED",
            )
        if not signature:
            raise WebhookSignatureError("Missing webhook signature header")

        try:
            body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        except UnicodeDecodeError as e:
            logger.warning("Webhook payload is not valid UTF-8", error=str(e))
            raise WebhookSignatureError(
                "Invalid webhook payload",
                code="INVALID_PAYLOAD",
            ) from e

        try:
            stripe.WebhookSignature.verify_header(
                body,
                signature,
                secret,
                tolerance=self.settings.stripe_webhook_tolerance,
            )
        except stripe.SignatureVerificationError as e:
            logger.warning("Webhook signature verification failed", error=str(e))
            raise WebhookSignatureError("Invalid webhook signature") from e

        try:
            return GatewayEvent.from_payload(json.loads(body))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning("Signed webhook payload is malformed", error=str(e))
            raise WebhookSignatureError(
                "Invalid webhook payload",
                code="INVALID_PAYLOAD",
            ) from e
