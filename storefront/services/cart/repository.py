"""
Cart repository for data access operations.

Carts are looked up by owning user. Items and their products are loaded
eagerly through the relationship ``selectin`` strategy so that callers can
walk a cart without further awaits.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.logging import get_logger
from storefront.database.models.cart import Cart, CartItem

logger = get_logger(__name__)


class CartRepository:
    """Data access for carts and cart items. Never commits."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_cart(self, user_id: str, refresh: bool = False) -> Optional[Cart]:
        """
        Retrieve the cart owned by ``user_id``.

        Args:
            user_id: Owning user identifier
            refresh: Reload the row and its items even if already in the
                session identity map

        Returns:
            Cart with items loaded, or None if the user has no cart

        Raises:
            SQLAlchemyError: If database operation fails
        """
        stmt = select(Cart).where(Cart.user_id == user_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        try:
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to retrieve cart",
                user_id=user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

    async def get_or_create_cart(self, user_id: str) -> Cart:
        cart = await self.get_cart(user_id)
        if cart is None:
            cart = Cart(user_id=user_id, items=[])
            self.session.add(cart)
            await self.session.flush()
            logger.info("Cart created", user_id=user_id, cart_id=cart.id)
        return cart

    async def clear_cart(self, cart_id: int) -> int:
        """
        Remove every item from a cart, keeping the cart row.

        Args:
            cart_id: Cart identifier

        Returns:
            Number of items removed
        """
        cart = await self.session.get(Cart, cart_id)
        if cart is None:
            return 0

        removed = len(cart.items)
        cart.items.clear()
        await self.session.flush()

        logger.debug("Cart cleared", cart_id=cart_id, items_removed=removed)
        return removed

    @staticmethod
    def find_item(cart: Cart, product_id: int) -> Optional[CartItem]:
        for item in cart.items:
            if item.product_id == product_id:
                return item
        return None
