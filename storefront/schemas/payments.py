"""
Payment Pydantic schemas for API request/response validation.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class PaymentIntentRequest(BaseModel):
    """
    Request schema for creating a payment intent.

    Without ``order_id`` the intent is priced from the caller's current cart
    and is meant to be confirmed before checkout. With ``order_id`` it pays
    for an existing order.
    """

    order_id: Optional[int] = Field(
        None,
        gt=0,
        description="Existing order to pay for; omit to pay for the cart",
    )

    model_config = {
        "json_schema_extra": {
            "example": {"order_id": 17},
        }
    }


class PaymentIntentResponse(BaseModel):
    payment_intent_id: str = Field(..., description="Stripe payment intent ID")
    client_secret: str = Field(..., description="Secret the client confirms with")
    status: str
    amount: Decimal = Field(..., description="Amount in currency units")
    currency: str
    subtotal: Optional[Decimal] = None
    tax: Optional[Decimal] = None
    shipping: Optional[Decimal] = None


class PaymentConfirmRequest(BaseModel):
    payment_intent_id: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Stripe payment intent ID",
    )

    @field_validator("payment_intent_id")
    @classmethod
    def validate_intent_id(cls, v: str) -> str:
        """Validate Stripe payment intent ID format."""
        v = v.strip()
        if not v.startswith("pi_"):
            raise ValueError("Payment intent ID must start with 'pi_'")
        return v


class PaymentConfirmResponse(BaseModel):
    payment_intent_id: str
    confirmed: bool


class RefundRequest(BaseModel):
    """Request schema for refunding an order's payment."""

    order_id: int = Field(..., gt=0, description="Order to refund")
    amount: Optional[Decimal] = Field(
        None,
        gt=0,
        decimal_places=2,
        description="Partial refund amount; full refund when omitted",
    )

    model_config = {
        "json_schema_extra": {
            "example": {"order_id": 17, "amount": "25.00"},
        }
    }


class RefundResponse(BaseModel):
    refund_id: str
    status: str
    amount: Decimal
    order_id: int


class WebhookAckResponse(BaseModel):
    """Acknowledgement returned to Stripe for every verified event."""

    received: bool = True
    event_id: str
    outcome: str
