"""Pricing engine: pure functions over a cart snapshot.

Every amount is an integer number of minor units in the cart's currency.
Nothing here touches storage: callers resolve discounts and shipping quotes
first and pass plain values in.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum


class DiscountType(Enum):
    BASKET = "basket"
    PRODUCT = "product"


class DiscountMethod(Enum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"


@dataclass(frozen=True)
class PricedLine:
    """One cart line as the engine sees it."""

    sku: str
    quantity: int
    price: int
    weight: float = 0.0
    product_id: str | None = None


@dataclass(frozen=True)
class DiscountTerms:
    """Discount parameters already expressed in the cart's currency."""

    method: DiscountMethod
    value: float
    discount_type: DiscountType = DiscountType.BASKET
    min_order_value: int = 0
    max_discount_value: int = 0
    product_ids: frozenset = field(default_factory=frozenset)


@dataclass(frozen=True)
class CartTotals:
    subtotal: int
    shipping_cost: int
    discount_amount: int
    final_amount: int
    total_weight: float


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def subtotal_of(lines: Iterable[PricedLine]) -> int:
    return sum(line.quantity * line.price for line in lines)


def weight_of(lines: Iterable[PricedLine]) -> float:
    return round(sum(line.quantity * (line.weight or 0.0) for line in lines), 3)


def final_amount(subtotal: int, shipping_cost: int, discount_amount: int) -> int:
    return max(0, subtotal + shipping_cost - discount_amount)


def calculate_discount(terms: DiscountTerms, lines: list[PricedLine]) -> int:
    """Discount amount for the given lines, or 0 when the minimum is not met."""
    subtotal = subtotal_of(lines)
    if subtotal < terms.min_order_value:
        return 0

    if terms.discount_type == DiscountType.PRODUCT:
        eligible = [line for line in lines if line.product_id and str(line.product_id) in terms.product_ids]
    else:
        eligible = list(lines)

    base = subtotal_of(eligible)
    if base <= 0:
        return 0

    if terms.method == DiscountMethod.PERCENTAGE:
        amount = _round_half_up(Decimal(base) * Decimal(str(terms.value)) / Decimal(100))
        if terms.max_discount_value > 0:
            amount = min(amount, terms.max_discount_value)
    elif terms.discount_type == DiscountType.PRODUCT:
        # Fixed product discounts apply per eligible unit
        units = sum(line.quantity for line in eligible)
        amount = int(terms.value) * units
    else:
        amount = int(terms.value)

    return max(0, min(amount, base))


def calculate_totals(lines: list[PricedLine], shipping_cost: int = 0, discount_amount: int = 0) -> CartTotals:
    subtotal = subtotal_of(lines)
    shipping_cost = shipping_cost or 0
    discount_amount = discount_amount or 0
    return CartTotals(
        subtotal=subtotal,
        shipping_cost=shipping_cost,
        discount_amount=discount_amount,
        final_amount=final_amount(subtotal, shipping_cost, discount_amount),
        total_weight=weight_of(lines),
    )
