"""Repricing a checkout against its collaborators.

Cart commands call :class:`CheckoutPricer` after mutating a checkout so that
stock is re-validated and the discount and shipping quotes follow the new
subtotal before anything is persisted.
"""

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from storefront import clock
from storefront.catalogue.variant import ProductVariant
from storefront.checkout.checkout import AppliedDiscount, Checkout, ShippingSelection
from storefront.money.currency import CurrencyConverter
from storefront.pricing.discount import Discount
from storefront.shipping.rate import ShippingRate, quote_rate

logger = structlog.get_logger(__name__)


class CheckoutPricer:
    def __init__(self, converter: CurrencyConverter | None = None):
        self.converter = converter or CurrencyConverter()
        self.variants = current_domain.repository_for(ProductVariant)

    # -------------------------------------------------------------------
    # Stock
    # -------------------------------------------------------------------
    def validate_stock(self, checkout: Checkout) -> None:
        for item in checkout.items:
            variant = self.variants.find_by_sku(item.sku)
            if variant is None:
                raise ValidationError({"sku": [f"Product {item.sku} is no longer available"]})
            variant.ensure_available(item.quantity)

    # -------------------------------------------------------------------
    # Quotes
    # -------------------------------------------------------------------
    def quote_discount(self, checkout: Checkout, discount: Discount) -> AppliedDiscount:
        """Price ``discount`` for the checkout, raising the rejection reason."""
        amount = discount.amount_for(checkout.priced_lines(), checkout.currency, self.converter, clock.now())
        return AppliedDiscount(discount_id=str(discount.id), code=discount.code, amount=amount)

    def quote_shipping(self, checkout: Checkout, rate: ShippingRate) -> ShippingSelection:
        if not rate.active:
            raise ValidationError({"shipping_method": [f"Shipping method {rate.name} is not available"]})
        if checkout.shipping_address and not rate.serves(checkout.shipping_address.country):
            raise ValidationError(
                {"shipping_method": [f"Shipping method {rate.name} does not ship to {checkout.shipping_address.country}"]}
            )
        lines = checkout.priced_lines()
        subtotal = sum(line.quantity * line.price for line in lines)
        weight = sum(line.quantity * line.weight for line in lines)
        quote = quote_rate(rate, subtotal, weight, checkout.currency, self.converter)
        return ShippingSelection(
            shipping_rate_id=quote.shipping_rate_id,
            name=quote.name,
            description=quote.description,
            estimated_delivery_days=quote.estimated_delivery_days,
            cost=quote.cost,
            free_shipping=quote.free_shipping,
        )

    # -------------------------------------------------------------------
    # Refresh after a mutation
    # -------------------------------------------------------------------
    def _requote_discount(self, checkout: Checkout) -> AppliedDiscount | None:
        if checkout.applied_discount is None or not checkout.has_items:
            return None
        discount = current_domain.repository_for(Discount).find_by_code(checkout.applied_discount.code)
        if discount is None:
            return None
        try:
            return self.quote_discount(checkout, discount)
        except ValidationError as exc:
            logger.warning(
                "Dropping discount that no longer applies",
                checkout_id=str(checkout.id),
                code=checkout.applied_discount.code,
                reason=str(exc.messages),
            )
            return None

    def _requote_shipping(self, checkout: Checkout) -> ShippingSelection | None:
        if checkout.shipping_option is None or not checkout.has_items:
            return None
        try:
            rate = current_domain.repository_for(ShippingRate).get(str(checkout.shipping_option.shipping_rate_id))
        except ObjectNotFoundError:
            return None
        try:
            return self.quote_shipping(checkout, rate)
        except ValidationError:
            logger.info(
                "Clearing shipping selection that no longer applies",
                checkout_id=str(checkout.id),
                shipping_rate_id=str(checkout.shipping_option.shipping_rate_id),
            )
            return None

    def refresh(self, checkout: Checkout) -> Checkout:
        """Re-validate stock and recompute discount, shipping and totals."""
        self.validate_stock(checkout)
        checkout.reprice(
            shipping_option=self._requote_shipping(checkout),
            applied_discount=self._requote_discount(checkout),
        )
        return checkout
