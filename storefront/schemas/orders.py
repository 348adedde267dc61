"""
Order management Pydantic schemas for API request/response validation.

This module defines the schemas for checkout (shipping address, notes and the
confirmed payment intent), administrative status changes, and the order,
line item and payment views returned by the order endpoints.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from storefront.services.orders.enums import OrderStatus, PaymentStatus


class ShippingAddressRequest(BaseModel):
    """Shipping address captured at checkout."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
    )

    street: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Street address",
    )
    city: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="City",
    )
    province: str = Field(
        ...,
        min_length=2,
        max_length=50,
        description="Province or state",
    )
    postal_code: str = Field(
        ...,
        min_length=3,
        max_length=20,
        description="Postal/ZIP code",
    )
    country: str = Field(
        default="CA",
        min_length=2,
        max_length=2,
        description="Country code (2 letters)",
    )

    @field_validator("country")
    @classmethod
    def validate_country_code(cls, v: str) -> str:
        """Normalize country code to upper case."""
        if not v.isalpha():
            raise ValueError("Country code must contain letters only")
        return v.upper()

    @field_validator("postal_code")
    @classmethod
    def normalize_postal_code(cls, v: str) -> str:
        return v.upper()


class OrderCreateRequest(BaseModel):
    """Request schema for converting the caller's cart into an order."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        json_schema_extra={
            "example": {
                "shipping_address": {
                    "street": "123 Main St",
                    "city": "Halifax",
                    "province": "NS",
                    "postal_code": "B3H 1A1",
                    "country": "CA",
                },
                "notes": "Leave at the side door",
                "payment_intent_id": "pi_3Nabc123",
            }
        },
    )

    shipping_address: ShippingAddressRequest = Field(
        ...,
        description="Destination for the order",
    )
    notes: Optional[str] = Field(
        None,
        max_length=1000,
        description="Customer notes",
    )
    payment_intent_id: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Payment intent the customer confirmed",
    )


class OrderStatusUpdateRequest(BaseModel):
    """Request schema for an administrative status change."""

    model_config = ConfigDict(str_strip_whitespace=True)

    status: OrderStatus = Field(..., description="Target order status")
    tracking_number: Optional[str] = Field(
        None,
        max_length=100,
        description="Carrier tracking number, recorded when shipping",
    )

    @model_validator(mode="after")
    def validate_target(self) -> "OrderStatusUpdateRequest":
        """Refunds are driven by the payment provider, not by this endpoint."""
        if self.status == OrderStatus.REFUNDED:
            raise ValueError("Orders are refunded through the refund endpoint")
        return self


class OrderItemResponse(BaseModel):
    """Schema for one purchased line."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    product_name: str
    quantity: int = Field(..., ge=1)
    unit_price: Decimal = Field(..., ge=0, decimal_places=2)
    discount: Decimal = Field(default=Decimal("0.00"), ge=0, decimal_places=2)
    subtotal: Decimal = Field(..., description="quantity * unit_price - discount")


class PaymentSummaryResponse(BaseModel):
    """Payment attached to an order."""

    model_config = ConfigDict(from_attributes=True)

    payment_intent_id: str
    amount: Decimal
    currency: str
    status: PaymentStatus
    payment_method: str
    failure_reason: Optional[str] = None
    refunded_amount: Optional[Decimal] = None
    created_at: datetime
    completed_at: Optional[datetime] = None


class ShippingAddressResponse(BaseModel):
    street: str
    city: str
    province: str
    postal_code: str
    country: str


class OrderResponse(BaseModel):
    """Full order view."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    order_number: str
    user_id: str
    status: OrderStatus
    subtotal: Decimal
    tax_amount: Decimal
    shipping_amount: Decimal
    total_amount: Decimal
    shipping_address: ShippingAddressResponse
    tracking_number: Optional[str] = None
    notes: Optional[str] = None
    items: list[OrderItemResponse] = Field(default_factory=list)
    payment: Optional[PaymentSummaryResponse] = None
    created_at: datetime
    updated_at: datetime
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class OrderSummaryResponse(BaseModel):
    """Compact order view used in listings."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    order_number: str
    status: OrderStatus
    total_amount: Decimal
    item_count: int = Field(default=0, ge=0)
    created_at: datetime

    @model_validator(mode="before")
    @classmethod
    def count_items(cls, data):
        """Derive ``item_count`` when built from an ORM order."""
        items = getattr(data, "items", None)
        if items is None or isinstance(data, dict):
            return data
        return {
            "id": data.id,
            "order_number": data.order_number,
            "status": data.status,
            "total_amount": data.total_amount,
            "item_count": sum(item.quantity for item in items),
            "created_at": data.created_at,
        }


class OrderListResponse(BaseModel):
    orders: list[OrderSummaryResponse]
    total: int = Field(..., ge=0)
