"""Checkout item management — commands and handler.

Lines are addressed by SKU. Every change re-validates stock for the whole
cart and reprices the checkout before it is persisted.
"""

from protean import handle
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from storefront.catalogue.variant import ProductVariant
from storefront.checkout.checkout import Checkout
from storefront.checkout.pricing import CheckoutPricer
from storefront.domain import storefront


@storefront.command(part_of="Checkout")
class AddCheckoutItem:
    checkout_id = Identifier(required=True)
    sku = String(required=True, max_length=100)
    quantity = Integer(required=True, min_value=1)


@storefront.command(part_of="Checkout")
class UpdateCheckoutItem:
    checkout_id = Identifier(required=True)
    sku = String(required=True, max_length=100)
    quantity = Integer(required=True, min_value=1)


@storefront.command(part_of="Checkout")
class RemoveCheckoutItem:
    checkout_id = Identifier(required=True)
    sku = String(required=True, max_length=100)


@storefront.command(part_of="Checkout")
class ClearCheckout:
    checkout_id = Identifier(required=True)


@storefront.command_handler(part_of=Checkout)
class CheckoutItemsHandler:
    @handle(AddCheckoutItem)
    def add_item(self, command):
        repo = current_domain.repository_for(Checkout)
        checkout = repo.get(command.checkout_id)

        pricer = CheckoutPricer()
        variant = current_domain.repository_for(ProductVariant).get_by_sku(command.sku)
        variant.ensure_available(checkout.quantity_of(command.sku) + command.quantity)

        existing = checkout.find_item(command.sku)
        price = existing.price if existing else variant.price_in(checkout.currency, pricer.converter)

        checkout.add_item(
            product_id=str(variant.product_id),
            variant_id=str(variant.id),
            sku=variant.sku,
            name=variant.name,
            price=price,
            quantity=command.quantity,
            weight=variant.weight,
        )
        pricer.refresh(checkout)
        repo.add(checkout)

    @handle(UpdateCheckoutItem)
    def update_item(self, command):
        repo = current_domain.repository_for(Checkout)
        checkout = repo.get(command.checkout_id)
        checkout.update_item(sku=command.sku, quantity=command.quantity)
        CheckoutPricer().refresh(checkout)
        repo.add(checkout)

    @handle(RemoveCheckoutItem)
    def remove_item(self, command):
        repo = current_domain.repository_for(Checkout)
        checkout = repo.get(command.checkout_id)
        checkout.remove_item(sku=command.sku)
        CheckoutPricer().refresh(checkout)
        repo.add(checkout)

    @handle(ClearCheckout)
    def clear(self, command):
        repo = current_domain.repository_for(Checkout)
        checkout = repo.get(command.checkout_id)
        checkout.clear()
        CheckoutPricer().refresh(checkout)
        repo.add(checkout)
