"""Shipping rate management — commands and handler."""

import json

from protean import handle
from protean.fields import Integer, String, Text
from protean.utils.globals import current_domain

from storefront.config import default_currency_code
from storefront.domain import storefront
from storefront.shipping.rate import ShippingRate


@storefront.command(part_of="ShippingRate")
class CreateShippingRate:
    name = String(required=True, max_length=100)
    description = String(max_length=500)
    estimated_delivery_days = Integer(min_value=0)
    countries = Text()  # JSON array of country codes
    currency_code = String(max_length=3)
    base_rate = Integer(default=0, min_value=0)
    min_order_value = Integer(default=0, min_value=0)
    free_shipping_threshold = Integer(default=0, min_value=0)
    weight_tiers = Text()  # JSON array of {min_weight, max_weight, rate}
    value_tiers = Text()  # JSON array of {min_order_value, max_order_value, rate}


@storefront.command(part_of="ShippingRate")
class DeactivateShippingRate:
    shipping_rate_id = String(required=True, max_length=255)


@storefront.command_handler(part_of=ShippingRate)
class ShippingRateManagementHandler:
    @handle(CreateShippingRate)
    def create_shipping_rate(self, command):
        rate = ShippingRate.create(
            name=command.name,
            description=command.description,
            estimated_delivery_days=command.estimated_delivery_days,
            countries=json.loads(command.countries or "[]"),
            currency_code=command.currency_code or default_currency_code(),
            base_rate=command.base_rate,
            min_order_value=command.min_order_value,
            free_shipping_threshold=command.free_shipping_threshold,
        )
        for tier in json.loads(command.weight_tiers or "[]"):
            rate.add_weight_tier(tier.get("min_weight", 0.0), tier["max_weight"], tier["rate"])
        for tier in json.loads(command.value_tiers or "[]"):
            rate.add_value_tier(tier.get("min_order_value", 0), tier.get("max_order_value", 0), tier["rate"])

        current_domain.repository_for(ShippingRate).add(rate)
        return str(rate.id)

    @handle(DeactivateShippingRate)
    def deactivate_shipping_rate(self, command):
        repo = current_domain.repository_for(ShippingRate)
        rate = repo.get(command.shipping_rate_id)
        rate.active = False
        repo.add(rate)
