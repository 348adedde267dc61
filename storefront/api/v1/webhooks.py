"""
Stripe webhook endpoint.

Every event with a valid signature is acknowledged with 200, whatever the
reconciler decided to do with it, so Stripe stops redelivering it. Only a
missing or invalid signature (or an unparseable signed payload) gets a 400.
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Header, HTTPException, Request, status

from storefront.api.deps import ReconcilerDep
from storefront.core.exceptions import WebhookSignatureError
from storefront.core.logging import get_logger
from storefront.schemas.payments import WebhookAckResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post(
    "/stripe",
    response_model=WebhookAckResponse,
    status_code=status.HTTP_200_OK,
    summary="Handle Stripe webhook",
    description="Verify and reconcile a Stripe event",
)
async def handle_stripe_webhook(
    request: Request,
    reconciler: ReconcilerDep,
    stripe_signature: Annotated[Optional[str], Header(alias="stripe-signature")] = None,
) -> WebhookAckResponse:
    """
    Handle Stripe webhook event.

    Args:
        request: Raw request; the body is verified byte for byte
        reconciler: Payment event reconciler
        stripe_signature: Stripe signature header

    Returns:
        WebhookAckResponse: Event id and reconciliation outcome

    Raises:
        HTTPException: 400 for a missing or invalid signature
    """
    payload = await request.body()

    try:
        result = await reconciler.handle(payload, stripe_signature)
    except WebhookSignatureError as e:
        logger.warning(
            "Rejected Stripe webhook",
            error=e.message,
            error_code=e.code,
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": e.message, "code": e.code},
        ) from e

    return WebhookAckResponse(event_id=result.event_id, outcome=result.outcome.value)
