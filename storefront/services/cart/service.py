"""
Cart service for shopping cart management.

Each operation runs in its own transaction: it validates against the live
catalog, mutates the cart and commits. Stock is only checked here, never
reserved; the authoritative decrement happens at checkout.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.exceptions import (
    CartItemNotFoundError,
    CartValidationError,
    InsufficientStockError,
    ProductNotFoundError,
)
from storefront.core.logging import get_logger
from storefront.database.models.cart import (
    MAX_ITEM_QUANTITY,
    MIN_ITEM_QUANTITY,
    Cart,
    CartItem,
)
from storefront.database.models.product import Product
from storefront.services.cart.repository import CartRepository
from storefront.services.inventory.ledger import InventoryLedger

logger = get_logger(__name__)


def _validate_quantity(quantity: int) -> None:
    if not MIN_ITEM_QUANTITY <= quantity <= MAX_ITEM_QUANTITY:
        raise CartValidationError(
            f"Quantity must be between {MIN_ITEM_QUANTITY} and {MAX_ITEM_QUANTITY}",
            quantity=quantity,
        )


class CartService:
    """
    Service for cart operations.

    Args:
        session: Async database session; the service commits on success and
            rolls back on any failure
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.repository = CartRepository(session)
        self.ledger = InventoryLedger(session)

    async def get_cart(self, user_id: str) -> Cart:
        """Return the user's cart, creating an empty one on first access."""
        cart = await self.repository.get_cart(user_id)
        if cart is None:
            cart = await self.repository.get_or_create_cart(user_id)
            await self.session.commit()
        return cart

    async def add_item(self, user_id: str, product_id: int, quantity: int) -> Cart:
        """
        Add a product to the cart or increase the quantity of an existing line.

        The unit price is captured from the catalog when a new line is
        created and kept for the life of the line.

        Args:
            user_id: Cart owner
            product_id: Product to add
            quantity: Units to add

        Returns:
            Updated cart

        Raises:
            CartValidationError: If the resulting quantity is out of range
            ProductNotFoundError: If the product does not exist or is inactive
            InsufficientStockError: If stock cannot cover the resulting quantity
        """
        _validate_quantity(quantity)

        try:
            product = await self._get_active_product(product_id)
            cart = await self.repository.get_or_create_cart(user_id)

            item = self.repository.find_item(cart, product_id)
            new_quantity = quantity + (item.quantity if item else 0)
            _validate_quantity(new_quantity)
            self._ensure_stock(product, new_quantity)

            if item is not None:
                item.quantity = new_quantity
            else:
                cart.items.append(
                    CartItem(
                        product_id=product.id,
                        product=product,
                        quantity=quantity,
                        unit_price=product.price,
                    )
                )

            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(
            "Item added to cart",
            user_id=user_id,
            product_id=product_id,
            quantity=new_quantity,
        )
        return cart

    async def update_item(self, user_id: str, product_id: int, quantity: int) -> Cart:
        """
        Set the quantity of an existing cart line.

        Raises:
            CartValidationError: If the quantity is out of range
            CartItemNotFoundError: If the product is not in the cart
            InsufficientStockError: If stock cannot cover the quantity
        """
        _validate_quantity(quantity)

        try:
            cart = await self.repository.get_cart(user_id)
            item = self.repository.find_item(cart, product_id) if cart else None
            if item is None:
                raise CartItemNotFoundError(product_id)

            product = await self._get_active_product(product_id)
            self._ensure_stock(product, quantity)

            item.quantity = quantity
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(
            "Cart item updated",
            user_id=user_id,
            product_id=product_id,
            quantity=quantity,
        )
        return cart

    async def remove_item(self, user_id: str, product_id: int) -> Cart:
        """
        Remove a product line from the cart.

        Raises:
            CartItemNotFoundError: If the product is not in the cart
        """
        try:
            cart = await self.repository.get_cart(user_id)
            item = self.repository.find_item(cart, product_id) if cart else None
            if item is None:
                raise CartItemNotFoundError(product_id)

            cart.items.remove(item)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info("Cart item removed", user_id=user_id, product_id=product_id)
        return cart

    async def clear(self, user_id: str) -> None:
        cart = await self.repository.get_cart(user_id)
        if cart is None:
            return
        try:
            await self.repository.clear_cart(cart.id)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        logger.info("Cart cleared", user_id=user_id, cart_id=cart.id)

    async def _get_active_product(self, product_id: int) -> Product:
        product = await self.ledger.get_product(product_id)
        if product is None or not product.is_active:
            raise ProductNotFoundError(product_id)
        return product

    @staticmethod
    def _ensure_stock(product: Product, quantity: int) -> None:
        if not product.has_stock(quantity):
            raise InsufficientStockError(
                product_id=product.id,
                product_name=product.name,
                requested=quantity,
                available=product.stock_quantity,
            )
