"""
Order management API endpoints.

This module implements the FastAPI router for the order lifecycle: checkout
from the caller's cart, order lookup and history, customer cancellation and
administrative status changes. Domain errors raised by the order service are
translated into HTTP responses by the application-level exception handlers.
"""

from typing import Optional

from fastapi import APIRouter, Query, status

from storefront.api.deps import AdminPrincipal, CurrentPrincipal, OrderServiceDep
from storefront.core.logging import get_logger
from storefront.database.models.order import OrderStatus
from storefront.schemas.orders import (
    OrderCreateRequest,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdateRequest,
    OrderSummaryResponse,
)
from storefront.services.orders.service import ShippingAddress

logger = get_logger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create new order",
    description="Convert the caller's cart into an order in a single transaction",
)
async def create_order(
    request: OrderCreateRequest,
    principal: CurrentPrincipal,
    orders: OrderServiceDep,
) -> OrderResponse:
    """
    Check out the caller's cart.

    Args:
        request: Shipping address, notes and confirmed payment intent
        principal: Authenticated buyer
        orders: Order service

    Returns:
        OrderResponse: Created order details
    """
    address = request.shipping_address
    order = await orders.create_order(
        user_id=principal.user_id,
        shipping_address=ShippingAddress(
            street=address.street,
            city=address.city,
            province=address.province,
            postal_code=address.postal_code,
            country=address.country,
        ),
        notes=request.notes,
        payment_intent_id=request.payment_intent_id,
        user_email=principal.email,
    )
    return OrderResponse.model_validate(order)


@router.get(
    "",
    response_model=OrderListResponse,
    summary="List user orders",
    description="Orders placed by the authenticated user, newest first",
)
async def list_orders(
    principal: CurrentPrincipal,
    orders: OrderServiceDep,
) -> OrderListResponse:
    results = await orders.list_orders(principal.user_id)
    return OrderListResponse(
        orders=[OrderSummaryResponse.model_validate(order) for order in results],
        total=len(results),
    )


@router.get(
    "/admin/all",
    response_model=OrderListResponse,
    summary="List all orders",
    description="Administrative listing across all customers",
)
async def list_all_orders(
    principal: AdminPrincipal,
    orders: OrderServiceDep,
    status_filter: Optional[OrderStatus] = Query(None, alias="status", description="Filter by order status"),
    skip: int = Query(0, ge=0, description="Number of records to skip"),
    limit: int = Query(50, ge=1, le=200, description="Maximum number of records to return"),
) -> OrderListResponse:
    results = await orders.list_all_orders(status=status_filter, skip=skip, limit=limit)
    return OrderListResponse(
        orders=[OrderSummaryResponse.model_validate(order) for order in results],
        total=len(results),
    )


@router.get(
    "/number/{order_number}",
    response_model=OrderResponse,
    summary="Get order by number",
)
async def get_order_by_number(
    order_number: str,
    principal: CurrentPrincipal,
    orders: OrderServiceDep,
) -> OrderResponse:
    order = await orders.get_order_by_number(order_number, principal)
    return OrderResponse.model_validate(order)


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order details",
)
async def get_order(
    order_id: int,
    principal: CurrentPrincipal,
    orders: OrderServiceDep,
) -> OrderResponse:
    order = await orders.get_order(order_id, principal)
    return OrderResponse.model_validate(order)


@router.put(
    "/{order_id}/cancel",
    response_model=OrderResponse,
    summary="Cancel order",
    description="Cancel a pending or processing order and restore its stock",
)
async def cancel_order(
    order_id: int,
    principal: CurrentPrincipal,
    orders: OrderServiceDep,
) -> OrderResponse:
    logger.info("Cancelling order", order_id=order_id, user_id=principal.user_id)
    order = await orders.cancel_order(order_id, principal.user_id)
    return OrderResponse.model_validate(order)


@router.put(
    "/{order_id}/status",
    response_model=OrderResponse,
    summary="Update order status",
    description="Administrative status change (processing, shipped, delivered, cancelled)",
)
async def update_order_status(
    order_id: int,
    request: OrderStatusUpdateRequest,
    principal: AdminPrincipal,
    orders: OrderServiceDep,
) -> OrderResponse:
    """
    Apply an administrative status change.

    Args:
        order_id: Order to update
        request: Target status and optional tracking number
        principal: Administrator making the change
        orders: Order service

    Returns:
        OrderResponse: Updated order
    """
    logger.info(
        "Updating order status",
        order_id=order_id,
        target_status=request.status.value,
        admin_id=principal.user_id,
    )
    order = await orders.update_status(
        order_id,
        request.status,
        tracking_number=request.tracking_number,
        actor_id=principal.user_id,
    )
    return OrderResponse.model_validate(order)
