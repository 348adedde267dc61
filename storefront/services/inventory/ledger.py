"""
Inventory ledger for product stock counts.

Checkout decrements stock and cancellation restores it. Both paths load the
product row with ``SELECT ... FOR UPDATE`` inside the caller's transaction,
so concurrent checkouts against the same product serialize on the row lock
in PostgreSQL instead of both passing the stock check. SQLite ignores the
locking clause and relies on its database-level write lock.

The ledger never commits; the enclosing unit of work decides the outcome.
"""

from typing import Iterable, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.exceptions import InsufficientStockError, ProductNotFoundError
from storefront.core.logging import get_logger
from storefront.database.models.product import Product

logger = get_logger(__name__)


class InventoryLedger:
    """Stock mutations for catalog products within a session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_product(self, product_id: int, for_update: bool = False) -> Optional[Product]:
        """
        Load a product, optionally taking a row lock.

        Args:
            product_id: Product identifier
            for_update: Lock the row until the transaction ends

        Returns:
            Product or None if it does not exist
        """
        stmt = select(Product).where(Product.id == product_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def lock_products(self, product_ids: Iterable[int]) -> dict[int, Product]:
        """
        Lock several products in ascending id order.

        A consistent lock order keeps two checkouts that share products from
        deadlocking on each other. Missing ids are simply absent from the
        returned mapping.
        """
        locked: dict[int, Product] = {}
        for product_id in sorted(set(product_ids)):
            product = await self.get_product(product_id, for_update=True)
            if product is not None:
                locked[product_id] = product
        return locked

    async def decrement_stock(self, product_id: int, quantity: int) -> Product:
        """
        Remove ``quantity`` units from a product's stock.

        Raises:
            ProductNotFoundError: If the product does not exist
            InsufficientStockError: If fewer than ``quantity`` units remain
        """
        product = await self.get_product(product_id, for_update=True)
        if product is None:
            raise ProductNotFoundError(product_id)
        return self._take(product, quantity)

    async def increment_stock(self, product_id: int, quantity: int) -> Product:
        """
        Return ``quantity`` units to a product's stock.

        Raises:
            ProductNotFoundError: If the product does not exist
        """
        if quantity <= 0:
            raise ValueError(f"Quantity must be positive, got {quantity}")

        product = await self.get_product(product_id, for_update=True)
        if product is None:
            raise ProductNotFoundError(product_id)

        previous = product.stock_quantity
        product.stock_quantity = previous + quantity
        logger.info(
            "Stock restored",
            product_id=product_id,
            quantity=quantity,
            stock_before=previous,
            stock_after=product.stock_quantity,
        )
        return product

    async def restore_many(self, quantities: Mapping[int, int]) -> list[int]:
        """
        Return stock for each ``product_id -> quantity`` in id order.

        Products removed from the catalog since the order was placed are
        skipped; there is nothing left to restock.

        Returns:
            Ids of the products that were skipped
        """
        locked = await self.lock_products(quantities)
        skipped = []
        for product_id in sorted(quantities):
            product = locked.get(product_id)
            if product is None:
                logger.warning("Skipping stock restore for missing product", product_id=product_id)
                skipped.append(product_id)
                continue
            product.stock_quantity += quantities[product_id]
        logger.info(
            "Stock restored",
            products=sorted(locked),
            units=sum(quantities[pid] for pid in locked),
        )
        return skipped

    def _take(self, product: Product, quantity: int) -> Product:
        if quantity <= 0:
            raise ValueError(f"Quantity must be positive, got {quantity}")
        if not product.has_stock(quantity):
            logger.warning(
                "Insufficient stock",
                product_id=product.id,
                requested=quantity,
                available=product.stock_quantity,
            )
            raise InsufficientStockError(
                product_id=product.id,
                product_name=product.name,
                requested=quantity,
                available=product.stock_quantity,
            )

        previous = product.stock_quantity
        product.stock_quantity = previous - quantity
        logger.debug(
            "Stock decremented",
            product_id=product.id,
            quantity=quantity,
            stock_before=previous,
            stock_after=product.stock_quantity,
        )
        return product

    def take_locked(self, product: Product, quantity: int) -> Product:
        """Decrement stock on a product previously returned by ``lock_products``."""
        return self._take(product, quantity)
