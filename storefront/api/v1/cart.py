"""
Shopping cart API endpoints.

Each authenticated user has exactly one cart, created on first access. Lines
are addressed by product id.
"""

from fastapi import APIRouter, Response, status

from storefront.api.deps import CartServiceDep, CurrentPrincipal
from storefront.schemas.cart import AddToCartRequest, CartResponse, UpdateCartItemRequest

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get(
    "",
    response_model=CartResponse,
    summary="Get cart",
    description="Retrieve the caller's cart, creating an empty one if needed",
)
async def get_cart(principal: CurrentPrincipal, carts: CartServiceDep) -> CartResponse:
    cart = await carts.get_cart(principal.user_id)
    return CartResponse.from_cart(cart)


@router.post(
    "/items",
    response_model=CartResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add item to cart",
    description="Add a product; adding a product already in the cart increases its quantity",
)
async def add_item(
    request: AddToCartRequest,
    principal: CurrentPrincipal,
    carts: CartServiceDep,
) -> CartResponse:
    """
    Add a product to the caller's cart.

    Args:
        request: Product and quantity
        principal: Authenticated user
        carts: Cart service

    Returns:
        CartResponse: Updated cart
    """
    cart = await carts.add_item(principal.user_id, request.product_id, request.quantity)
    return CartResponse.from_cart(cart)


@router.put(
    "/items/{product_id}",
    response_model=CartResponse,
    summary="Update cart item quantity",
)
async def update_item(
    product_id: int,
    request: UpdateCartItemRequest,
    principal: CurrentPrincipal,
    carts: CartServiceDep,
) -> CartResponse:
    cart = await carts.update_item(principal.user_id, product_id, request.quantity)
    return CartResponse.from_cart(cart)


@router.delete(
    "/items/{product_id}",
    response_model=CartResponse,
    summary="Remove item from cart",
)
async def remove_item(
    product_id: int,
    principal: CurrentPrincipal,
    carts: CartServiceDep,
) -> CartResponse:
    cart = await carts.remove_item(principal.user_id, product_id)
    return CartResponse.from_cart(cart)


@router.delete(
    "",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Clear cart",
)
async def clear_cart(principal: CurrentPrincipal, carts: CartServiceDep) -> Response:
    await carts.clear(principal.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
