"""Changing the currency of a checkout — command and handler.

Lines take the variant's explicit price in the new currency, else their
current price converted. The shipping quote and the discount are then quoted
again from their shipping rate and discount code, so a round trip through
another currency lands back on the original totals.
"""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from storefront.checkout.checkout import Checkout
from storefront.checkout.pricing import CheckoutPricer
from storefront.domain import storefront

logger = structlog.get_logger(__name__)


@storefront.command(part_of="Checkout")
class ChangeCheckoutCurrency:
    checkout_id = Identifier(required=True)
    currency = String(required=True, max_length=3)


def _item_prices(checkout, target, pricer) -> dict:
    """Price every line in ``target``: explicit variant price, else converted."""
    prices = {}
    for item in checkout.items:
        variant = pricer.variants.find_by_sku(item.sku)
        if variant is None or not variant.is_active:
            continue
        explicit = variant.explicit_price(target)
        prices[item.sku] = (
            explicit if explicit is not None else pricer.converter.convert(item.price, checkout.currency, target)
        )
    return prices


@storefront.command_handler(part_of=Checkout)
class CheckoutCurrencyHandler:
    @handle(ChangeCheckoutCurrency)
    def change_currency(self, command):
        repo = current_domain.repository_for(Checkout)
        checkout = repo.get(command.checkout_id)
        target = command.currency.upper()
        if target == checkout.currency:
            return checkout.currency

        pricer = CheckoutPricer()
        # Both currencies must be known and enabled before anything is repriced
        pricer.converter.currency(target)
        pricer.converter.currency(checkout.currency)

        previous = checkout.currency
        try:
            checkout.change_currency(
                target,
                _item_prices(checkout, target, pricer),
                checkout.shipping_option,
                checkout.applied_discount,
            )
        except ValidationError:
            logger.warning("Currency change rejected", checkout_id=str(checkout.id), target=target)
            raise

        pricer.refresh(checkout)
        repo.add(checkout)
        logger.info("Checkout currency changed", checkout_id=str(checkout.id), previous=previous, currency=target)
        return target
