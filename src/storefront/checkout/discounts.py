"""Discount codes on a checkout — commands and handler."""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from storefront.checkout.checkout import Checkout
from storefront.checkout.pricing import CheckoutPricer
from storefront.domain import storefront
from storefront.pricing.discount import Discount

logger = structlog.get_logger(__name__)


@storefront.command(part_of="Checkout")
class ApplyDiscountCode:
    checkout_id = Identifier(required=True)
    code = String(required=True, max_length=50)


@storefront.command(part_of="Checkout")
class RemoveDiscountCode:
    checkout_id = Identifier(required=True)


@storefront.command_handler(part_of=Checkout)
class CheckoutDiscountHandler:
    @handle(ApplyDiscountCode)
    def apply_discount_code(self, command):
        repo = current_domain.repository_for(Checkout)
        checkout = repo.get(command.checkout_id)

        discount = current_domain.repository_for(Discount).find_by_code(command.code)
        if discount is None:
            raise ObjectNotFoundError(f"Discount code {command.code.strip().upper()} not found")

        pricer = CheckoutPricer()
        pricer.validate_stock(checkout)
        applied = pricer.quote_discount(checkout, discount)
        checkout.apply_discount(applied)
        repo.add(checkout)

        logger.info(
            "Discount applied",
            checkout_id=str(checkout.id),
            code=applied.code,
            amount=applied.amount,
            currency=checkout.currency,
        )
        return applied.amount

    @handle(RemoveDiscountCode)
    def remove_discount_code(self, command):
        repo = current_domain.repository_for(Checkout)
        checkout = repo.get(command.checkout_id)
        checkout.remove_discount()
        CheckoutPricer().refresh(checkout)
        repo.add(checkout)
