"""
Payment processing API endpoints for Stripe integration.

This module implements FastAPI router endpoints for payment intent creation,
payment confirmation checks and administrative refunds. Order status changes
that follow from these operations arrive through the Stripe webhook.
"""

from fastapi import APIRouter, status

from storefront.api.deps import AdminPrincipal, CurrentPrincipal, PaymentServiceDep
from storefront.core.logging import get_logger
from storefront.schemas.payments import (
    PaymentConfirmRequest,
    PaymentConfirmResponse,
    PaymentIntentRequest,
    PaymentIntentResponse,
    RefundRequest,
    RefundResponse,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post(
    "/intents",
    response_model=PaymentIntentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create payment intent",
    description="Create a Stripe payment intent for the caller's cart or an existing order",
)
async def create_payment_intent(
    request: PaymentIntentRequest,
    principal: CurrentPrincipal,
    payments: PaymentServiceDep,
) -> PaymentIntentResponse:
    """
    Create a payment intent.

    Args:
        request: Optional order id; the cart is priced when omitted
        principal: Authenticated user
        payments: Payment service

    Returns:
        PaymentIntentResponse: Intent id and client secret
    """
    if request.order_id is None:
        checkout = await payments.create_checkout_intent(principal)
        intent = checkout.intent
        return PaymentIntentResponse(
            payment_intent_id=intent.payment_intent_id,
            client_secret=intent.client_secret,
            status=intent.status,
            amount=intent.amount,
            currency=intent.currency,
            subtotal=checkout.subtotal,
            tax=checkout.tax,
            shipping=checkout.shipping,
        )

    intent = await payments.create_payment_intent(request.order_id, principal)
    return PaymentIntentResponse(
        payment_intent_id=intent.payment_intent_id,
        client_secret=intent.client_secret,
        status=intent.status,
        amount=intent.amount,
        currency=intent.currency,
    )


@router.post(
    "/confirm",
    response_model=PaymentConfirmResponse,
    summary="Check payment intent",
    description="Report whether a payment intent has succeeded",
)
async def confirm_payment(
    request: PaymentConfirmRequest,
    principal: CurrentPrincipal,
    payments: PaymentServiceDep,
) -> PaymentConfirmResponse:
    confirmed = await payments.confirm_payment(request.payment_intent_id)
    return PaymentConfirmResponse(
        payment_intent_id=request.payment_intent_id,
        confirmed=confirmed,
    )


@router.post(
    "/refund",
    response_model=RefundResponse,
    summary="Refund order payment",
    description="Issue a full or partial refund; the order is marked refunded by the webhook",
)
async def refund_payment(
    request: RefundRequest,
    principal: AdminPrincipal,
    payments: PaymentServiceDep,
) -> RefundResponse:
    logger.info(
        "Refund requested by admin",
        order_id=request.order_id,
        admin_id=principal.user_id,
        amount=str(request.amount) if request.amount is not None else None,
    )
    result = await payments.refund_payment(request.order_id, request.amount)
    return RefundResponse(
        refund_id=result.refund_id,
        status=result.status,
        amount=result.amount,
        order_id=request.order_id,
    )
