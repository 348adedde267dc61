"""
Domain exception hierarchy for the order lifecycle.

Every error carries a human readable message, a stable machine ``code`` and a
free-form ``context`` dict that is logged and returned to API clients as
``details``. The intermediate classes group errors by how callers should
react to them; the HTTP layer maps each group to a status code.
"""

from decimal import Decimal
from typing import Any


class StorefrontError(Exception):
    """Base exception for all storefront domain errors."""

    default_code = "STOREFRONT_ERROR"

    def __init__(self, message: str, code: str | None = None, **context: Any):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.context = context


# Validation -----------------------------------------------------------------


class ValidationFailure(StorefrontError):
    """Request is well-formed but violates a business rule."""

    default_code = "VALIDATION_ERROR"


class EmptyCartError(ValidationFailure):
    default_code = "EMPTY_CART"

    def __init__(self, user_id: str):
        super().__init__("Cart is empty", user_id=user_id)


class InsufficientStockError(ValidationFailure):
    default_code = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: int, product_name: str, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for {product_name}",
            product_id=product_id,
            product_name=product_name,
            requested=requested,
            available=available,
        )


class CartValidationError(ValidationFailure):
    default_code = "INVALID_CART_ITEM"


class InvalidTransitionError(ValidationFailure):
    default_code = "INVALID_TRANSITION"

    def __init__(self, current_status: str, target_status: str, **context: Any):
        super().__init__(
            f"Cannot transition order from {current_status} to {target_status}",
            current_status=current_status,
            target_status=target_status,
            **context,
        )
        self.current_status = current_status
        self.target_status = target_status


class InvalidAmountError(ValidationFailure):
    default_code = "INVALID_AMOUNT"

    def __init__(self, message: str, amount: Decimal | None = None, **context: Any):
        super().__init__(
            message,
            amount=str(amount) if amount is not None else None,
            **context,
        )


# Not found ------------------------------------------------------------------


class NotFoundFailure(StorefrontError):
    default_code = "NOT_FOUND"


class OrderNotFoundError(NotFoundFailure):
    default_code = "ORDER_NOT_FOUND"

    def __init__(self, message: str = "Order not found", **context: Any):
        super().__init__(message, **context)


class ProductNotFoundError(NotFoundFailure):
    default_code = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: int):
        super().__init__(f"Product {product_id} not found", product_id=product_id)


class CartItemNotFoundError(NotFoundFailure):
    default_code = "CART_ITEM_NOT_FOUND"

    def __init__(self, product_id: int):
        super().__init__(
            f"Product {product_id} is not in the cart",
            product_id=product_id,
        )


# Authorization --------------------------------------------------------------


class AuthorizationFailure(StorefrontError):
    default_code = "FORBIDDEN"


class OrderAccessDeniedError(AuthorizationFailure):
    default_code = "ORDER_ACCESS_DENIED"

    def __init__(self, order_id: int, user_id: str):
        super().__init__(
            "You do not have access to this order",
            order_id=order_id,
            user_id=user_id,
        )


# External dependencies -------------------------------------------------------


class ExternalServiceFailure(StorefrontError):
    """A collaborator outside the process failed; the caller may retry."""

    default_code = "EXTERNAL_SERVICE_ERROR"


class PaymentGatewayError(ExternalServiceFailure):
    default_code = "PAYMENT_GATEWAY_ERROR"


class PaymentNotConfirmedError(ExternalServiceFailure):
    default_code = "PAYMENT_NOT_CONFIRMED"

    def __init__(self, payment_intent_id: str):
        super().__init__(
            "Payment has not been confirmed",
            payment_intent_id=payment_intent_id,
        )


class WebhookSignatureError(ExternalServiceFailure):
    default_code = "INVALID_SIGNATURE"


# Persistence ------------------------------------------------------------------


class PersistenceFailure(StorefrontError):
    """Storage failure; the enclosing transaction has been rolled back."""

    default_code = "PERSISTENCE_ERROR"


class CheckoutPersistenceError(PersistenceFailure):
    default_code = "CHECKOUT_FAILED"
