"""
FastAPI dependencies for authentication, authorization and services.

This module provides dependency functions for JWT authentication, role-based
access control, database session management, and construction of the
services each request handler needs.
"""

from functools import lru_cache
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import get_settings
from storefront.core.logging import get_logger, set_user_id
from storefront.core.security import Principal, TokenError, principal_from_token
from storefront.database.connection import get_db
from storefront.services.cart.service import CartService
from storefront.services.notifications.dispatcher import NotificationDispatcher
from storefront.services.orders.service import OrderService
from storefront.services.payments.service import PaymentService
from storefront.services.payments.stripe_client import StripeGateway
from storefront.services.payments.webhook import PaymentEventReconciler

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)


async def get_current_principal(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> Principal:
    """
    Validate the bearer token and resolve the caller.

    Args:
        credentials: HTTP Bearer token from Authorization header

    Returns:
        Principal: Authenticated caller

    Raises:
        HTTPException: 401 if the token is missing, invalid or expired
    """
    if credentials is None:
        logger.warning("Authentication failed: No credentials provided")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        principal = principal_from_token(credentials.credentials)
    except TokenError as e:
        logger.warning("Authentication failed", error_code=e.code)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    set_user_id(principal.user_id)
    return principal


async def get_current_admin(
    principal: Annotated[Principal, Depends(get_current_principal)],
) -> Principal:
    """
    Dependency for endpoints requiring admin access.

    Raises:
        HTTPException: 403 if the caller is not an administrator
    """
    if not principal.is_admin:
        logger.warning(
            "Access denied: Insufficient permissions",
            user_id=principal.user_id,
            user_role=principal.role.value,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions",
        )
    return principal


@lru_cache
def get_gateway() -> StripeGateway:
    """Process-wide Stripe gateway."""
    return StripeGateway(settings=get_settings())


@lru_cache
def get_dispatcher() -> NotificationDispatcher:
    """Process-wide email dispatcher."""
    return NotificationDispatcher(settings=get_settings())


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
AdminPrincipal = Annotated[Principal, Depends(get_current_admin)]
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
Gateway = Annotated[StripeGateway, Depends(get_gateway)]
Dispatcher = Annotated[NotificationDispatcher, Depends(get_dispatcher)]


def get_order_service(
    db: DatabaseSession, gateway: Gateway, dispatcher: Dispatcher
) -> OrderService:
    return OrderService(db, gateway=gateway, settings=get_settings(), dispatcher=dispatcher)


def get_cart_service(db: DatabaseSession) -> CartService:
    return CartService(db)


def get_payment_service(db: DatabaseSession, gateway: Gateway) -> PaymentService:
    return PaymentService(db, gateway, settings=get_settings())


def get_reconciler(
    db: DatabaseSession, gateway: Gateway, dispatcher: Dispatcher
) -> PaymentEventReconciler:
    return PaymentEventReconciler(db, gateway, dispatcher)


OrderServiceDep = Annotated[OrderService, Depends(get_order_service)]
CartServiceDep = Annotated[CartService, Depends(get_cart_service)]
PaymentServiceDep = Annotated[PaymentService, Depends(get_payment_service)]
ReconcilerDep = Annotated[PaymentEventReconciler, Depends(get_reconciler)]
