"""Shipping rate aggregate and quoting.

A rate describes one shipping method for a set of destination countries.
Cost is the base rate plus the first matching weight tier plus the first
matching order-value tier, waived entirely above the free-shipping
threshold. Amounts are minor units of the rate's currency.
"""

import json
from dataclasses import dataclass
from datetime import UTC, datetime

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Integer, String, Text
from protean.utils.globals import current_domain

from storefront.domain import storefront


@storefront.entity(part_of="ShippingRate")
class WeightTier:
    min_weight = Float(default=0.0, min_value=0.0)
    max_weight = Float(required=True, min_value=0.0)
    rate = Integer(required=True, min_value=0)

    def matches(self, weight):
        return self.min_weight <= weight <= self.max_weight


@storefront.entity(part_of="ShippingRate")
class ValueTier:
    min_order_value = Integer(default=0, min_value=0)
    max_order_value = Integer(default=0, min_value=0)  # 0 = no upper bound
    rate = Integer(required=True, min_value=0)

    def matches(self, order_value):
        if order_value < self.min_order_value:
            return False
        return not self.max_order_value or order_value <= self.max_order_value


@storefront.aggregate
class ShippingRate:
    name = String(required=True, max_length=100)
    description = String(max_length=500)
    estimated_delivery_days = Integer(min_value=0)
    countries = Text()  # JSON array of ISO country codes; empty = everywhere
    currency_code = String(required=True, max_length=3)
    base_rate = Integer(default=0, min_value=0)
    min_order_value = Integer(default=0, min_value=0)
    free_shipping_threshold = Integer(default=0, min_value=0)  # 0 = never free
    weight_tiers = HasMany(WeightTier)
    value_tiers = HasMany(ValueTier)
    active = Boolean(default=True)
    created_at = DateTime()

    @invariant.post
    def free_threshold_above_minimum(self):
        if self.free_shipping_threshold and self.free_shipping_threshold < (self.min_order_value or 0):
            raise ValidationError(
                {"free_shipping_threshold": ["Free shipping threshold must not be below the minimum order value"]}
            )

    @classmethod
    def create(
        cls,
        name,
        currency_code,
        base_rate=0,
        description=None,
        estimated_delivery_days=None,
        countries=None,
        min_order_value=0,
        free_shipping_threshold=0,
    ):
        return cls(
            name=name,
            description=description,
            estimated_delivery_days=estimated_delivery_days,
            countries=json.dumps([c.upper() for c in (countries or [])]),
            currency_code=currency_code.upper(),
            base_rate=base_rate,
            min_order_value=min_order_value or 0,
            free_shipping_threshold=free_shipping_threshold or 0,
            active=True,
            created_at=datetime.now(UTC),
        )

    def add_weight_tier(self, min_weight, max_weight, rate):
        if max_weight < min_weight:
            raise ValidationError({"max_weight": ["Maximum weight must not be below minimum weight"]})
        self.add_weight_tiers(WeightTier(min_weight=min_weight, max_weight=max_weight, rate=rate))

    def add_value_tier(self, min_order_value, max_order_value, rate):
        if max_order_value and max_order_value < min_order_value:
            raise ValidationError({"max_order_value": ["Maximum order value must not be below minimum"]})
        self.add_value_tiers(ValueTier(min_order_value=min_order_value, max_order_value=max_order_value, rate=rate))

    @property
    def country_codes(self) -> list[str]:
        return json.loads(self.countries or "[]")

    def serves(self, country) -> bool:
        codes = self.country_codes
        return not codes or (country or "").upper() in codes

    def calculate_cost(self, order_value, weight) -> int:
        """Shipping cost for an order of ``order_value`` (rate currency) and ``weight``."""
        if self.free_shipping_threshold and order_value >= self.free_shipping_threshold:
            return 0
        if order_value < (self.min_order_value or 0):
            raise ValidationError({"shipping_method": [f"Order value is below the minimum for {self.name}"]})

        cost = self.base_rate or 0
        weight_tier = next((t for t in self.weight_tiers if t.matches(weight)), None)
        if weight_tier:
            cost += weight_tier.rate
        value_tier = next((t for t in self.value_tiers if t.matches(order_value)), None)
        if value_tier:
            cost += value_tier.rate
        return cost


@storefront.repository(part_of=ShippingRate)
class ShippingRateRepository:
    def find_active(self) -> list[ShippingRate]:
        return self._dao.query.filter(active=True).all().items


@dataclass(frozen=True)
class ShippingQuote:
    shipping_rate_id: str
    name: str
    description: str | None
    estimated_delivery_days: int | None
    cost: int
    free_shipping: bool


def quote_rate(rate: ShippingRate, order_value, weight, currency_code, converter) -> ShippingQuote:
    """Quote ``rate`` for a cart whose subtotal is ``order_value`` in ``currency_code``."""
    value_in_rate_currency = converter.convert(order_value, currency_code, rate.currency_code)
    cost = rate.calculate_cost(value_in_rate_currency, weight)
    return ShippingQuote(
        shipping_rate_id=str(rate.id),
        name=rate.name,
        description=rate.description,
        estimated_delivery_days=rate.estimated_delivery_days,
        cost=converter.convert(cost, rate.currency_code, currency_code),
        free_shipping=cost == 0,
    )


def available_shipping_options(country, order_value, weight, currency_code, converter) -> list[ShippingQuote]:
    """All rates that serve ``country`` and accept the cart, cheapest first."""
    quotes = []
    for rate in current_domain.repository_for(ShippingRate).find_active():
        if not rate.serves(country):
            continue
        try:
            quotes.append(quote_rate(rate, order_value, weight, currency_code, converter))
        except ValidationError:
            continue
    return sorted(quotes, key=lambda q: (q.cost, q.name))
