"""Order pricing.

Totals are computed with ``Decimal`` arithmetic only. Tax is rounded to the
cent with ROUND_HALF_UP, so a subtotal of 0.10 yields 0.02 tax (0.015 rounds
up) and 45.00 yields 6.75.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Protocol

CENT = Decimal("0.01")
TAX_RATE = Decimal("0.15")
FLAT_SHIPPING = Decimal("10.00")


class PricedLine(Protocol):
    quantity: int
    unit_price: Decimal
    discount: Decimal


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal


def to_money(value: Decimal) -> Decimal:
    """Quantize ``value`` to cents, rounding half up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def line_subtotal(quantity: int, unit_price: Decimal, discount: Decimal = Decimal("0")) -> Decimal:
    """
    Compute ``quantity * unit_price - discount`` for one line.

    Raises:
        TypeError: If a float sneaks in as a price or discount
        ValueError: If the quantity is not positive or amounts are negative
    """
    if isinstance(unit_price, float) or isinstance(discount, float):
        raise TypeError("Monetary amounts must be Decimal, not float")
    if quantity <= 0:
        raise ValueError(f"Quantity must be positive, got {quantity}")
    if unit_price < 0 or discount < 0:
        raise ValueError("Unit price and discount must be non-negative")
    return Decimal(quantity) * unit_price - discount


def calculate_totals(
    items: Iterable[PricedLine],
    tax_rate: Decimal = TAX_RATE,
    shipping: Decimal = FLAT_SHIPPING,
) -> OrderTotals:
    """
    Derive subtotal, tax, shipping and grand total for a set of lines.

    Args:
        items: Objects exposing ``quantity``, ``unit_price`` and ``discount``
        tax_rate: Fractional tax rate applied to the subtotal
        shipping: Flat shipping charge

    Returns:
        OrderTotals with every amount quantized to cents

    Raises:
        ValueError: If discounts push the subtotal below zero
    """
    subtotal = sum(
        (line_subtotal(item.quantity, item.unit_price, item.discount) for item in items),
        Decimal("0"),
    )
    subtotal = to_money(subtotal)
    if subtotal < 0:
        raise ValueError("Order subtotal cannot be negative")

    tax = to_money(subtotal * tax_rate)
    shipping = to_money(shipping)

    return OrderTotals(
        subtotal=subtotal,
        tax=tax,
        shipping=shipping,
        total=subtotal + tax + shipping,
    )
