"""
Immutable view of a cart taken at checkout time.
"""

from dataclasses import dataclass
from decimal import Decimal

from storefront.database.models.cart import Cart


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int
    unit_price: Decimal
    discount: Decimal = Decimal("0.00")


@dataclass(frozen=True)
class CartSnapshot:
    """
    Line items entering an order.

    The snapshot is detached from the ORM so that checkout works from a
    consistent copy even if the cart rows are modified afterwards in the
    same transaction.
    """

    cart_id: int
    user_id: str
    lines: tuple[CartLine, ...]

    @classmethod
    def from_cart(cls, cart: Cart) -> "CartSnapshot":
        return cls(
            cart_id=cart.id,
            user_id=cart.user_id,
            lines=tuple(
                CartLine(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                )
                for item in cart.items
            ),
        )

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def product_ids(self) -> list[int]:
        return [line.product_id for line in self.lines]
