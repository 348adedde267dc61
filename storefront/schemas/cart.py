"""
Shopping cart Pydantic schemas for API request/response validation.

Cart lines are addressed by product id: adding a product that is already in
the cart increases that line's quantity.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from storefront.database.models.cart import MAX_ITEM_QUANTITY, MIN_ITEM_QUANTITY


class AddToCartRequest(BaseModel):
    """Schema for adding a product to the cart."""

    product_id: int = Field(
        ...,
        gt=0,
        description="ID of the product to add",
    )
    quantity: int = Field(
        default=1,
        ge=MIN_ITEM_QUANTITY,
        le=MAX_ITEM_QUANTITY,
        description="Units to add",
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "product_id": 42,
                "quantity": 2,
            }
        }
    }


class UpdateCartItemRequest(BaseModel):
    """Schema for replacing a cart line's quantity."""

    quantity: int = Field(
        ...,
        ge=MIN_ITEM_QUANTITY,
        le=MAX_ITEM_QUANTITY,
        description="New quantity for the line",
    )


class CartItemResponse(BaseModel):
    """Schema for cart item in response."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    product_name: str = Field(..., description="Current catalog name")
    quantity: int = Field(..., ge=MIN_ITEM_QUANTITY, le=MAX_ITEM_QUANTITY)
    unit_price: Decimal = Field(..., ge=0, description="Price captured when added")
    line_total: Decimal = Field(..., ge=0)
    added_at: datetime


class CartResponse(BaseModel):
    """Schema for the complete cart."""

    id: int
    user_id: str
    items: list[CartItemResponse] = Field(default_factory=list)
    total_items: int = Field(..., ge=0)
    subtotal: Decimal = Field(..., ge=0)
    updated_at: datetime

    @classmethod
    def from_cart(cls, cart) -> "CartResponse":
        return cls(
            id=cart.id,
            user_id=cart.user_id,
            items=[
                CartItemResponse(
                    id=item.id,
                    product_id=item.product_id,
                    product_name=item.product.name,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    line_total=item.line_total,
                    added_at=item.created_at,
                )
                for item in cart.items
            ],
            total_items=cart.total_items,
            subtotal=cart.subtotal,
            updated_at=cart.updated_at,
        )
