"""Pricing Calculator: a pure function from cart contents to an order total.

All amounts are integers in minor currency units. The same inputs always
produce the same breakdown, and the breakdown always satisfies

    total_amount == subtotal + shipping_amount + tax_amount - discount_amount
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: int
    shipping_amount: int
    tax_amount: int
    discount_amount: int
    total_amount: int

    def as_dict(self) -> dict:
        return {
            "subtotal": self.subtotal,
            "shipping_amount": self.shipping_amount,
            "tax_amount": self.tax_amount,
            "discount_amount": self.discount_amount,
            "total_amount": self.total_amount,
        }


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_tax(subtotal: int, tax_rate_percent) -> int:
    """Tax on the subtotal, rounded to the nearest minor unit (halves go up)."""
    return round_half_up(Decimal(subtotal) * Decimal(str(tax_rate_percent)) / Decimal(100))


def calculate_pricing(lines, shipping_cost: int, discount_amount: int = 0, tax_rate_percent=9) -> PriceBreakdown:
    """Price a cart.

    Args:
        lines: Iterable of objects exposing ``unit_price`` and ``quantity``.
        shipping_cost: Price of the chosen shipping method.
        discount_amount: Requested discount (usually from a validated coupon).
        tax_rate_percent: Policy tax rate applied to the subtotal.

    The applied discount is clamped so the total never drops below zero.
    """
    if shipping_cost < 0:
        raise ValueError("Shipping cost cannot be negative")
    if discount_amount < 0:
        raise ValueError("Discount cannot be negative")

    subtotal = 0
    for line in lines:
        if line.quantity < 1:
            raise ValueError("Quantity must be at least 1")
        if line.unit_price < 0:
            raise ValueError("Unit price cannot be negative")
        subtotal += line.unit_price * line.quantity

    tax_amount = compute_tax(subtotal, tax_rate_percent)
    gross = subtotal + shipping_cost + tax_amount
    applied_discount = min(discount_amount, gross)

    return PriceBreakdown(
        subtotal=subtotal,
        shipping_amount=shipping_cost,
        tax_amount=tax_amount,
        discount_amount=applied_discount,
        total_amount=gross - applied_discount,
    )
