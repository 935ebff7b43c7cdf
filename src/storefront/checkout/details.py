"""Addresses, customer details and shipping selection — commands and handler."""

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from storefront.checkout.checkout import Checkout, CheckoutAddress, CustomerDetails
from storefront.checkout.pricing import CheckoutPricer
from storefront.domain import storefront
from storefront.shipping.rate import ShippingRate


@storefront.command(part_of="Checkout")
class SetShippingAddress:
    checkout_id = Identifier(required=True)
    street_address = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    postal_code = String(required=True, max_length=20)
    country = String(required=True, max_length=2)


@storefront.command(part_of="Checkout")
class SetBillingAddress:
    checkout_id = Identifier(required=True)
    street_address = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    postal_code = String(required=True, max_length=20)
    country = String(required=True, max_length=2)


@storefront.command(part_of="Checkout")
class SetCustomerDetails:
    checkout_id = Identifier(required=True)
    email = String(required=True, max_length=254)
    phone = String(max_length=20)
    full_name = String(max_length=200)


@storefront.command(part_of="Checkout")
class SelectShippingMethod:
    checkout_id = Identifier(required=True)
    shipping_rate_id = Identifier(required=True)


def _address_from(command) -> CheckoutAddress:
    return CheckoutAddress(
        street_address=command.street_address,
        city=command.city,
        state=command.state,
        postal_code=command.postal_code,
        country=command.country.upper(),
    )


@storefront.command_handler(part_of=Checkout)
class CheckoutDetailsHandler:
    @handle(SetShippingAddress)
    def set_shipping_address(self, command):
        repo = current_domain.repository_for(Checkout)
        checkout = repo.get(command.checkout_id)
        checkout.set_shipping_address(_address_from(command))
        # A new destination can invalidate the selected shipping rate
        CheckoutPricer().refresh(checkout)
        repo.add(checkout)

    @handle(SetBillingAddress)
    def set_billing_address(self, command):
        repo = current_domain.repository_for(Checkout)
        checkout = repo.get(command.checkout_id)
        checkout.set_billing_address(_address_from(command))
        CheckoutPricer().refresh(checkout)
        repo.add(checkout)

    @handle(SetCustomerDetails)
    def set_customer_details(self, command):
        if "@" not in command.email:
            raise ValidationError({"email": ["Invalid email address"]})

        repo = current_domain.repository_for(Checkout)
        checkout = repo.get(command.checkout_id)
        checkout.set_customer_details(
            CustomerDetails(email=command.email, phone=command.phone, full_name=command.full_name)
        )
        CheckoutPricer().refresh(checkout)
        repo.add(checkout)

    @handle(SelectShippingMethod)
    def select_shipping_method(self, command):
        repo = current_domain.repository_for(Checkout)
        checkout = repo.get(command.checkout_id)
        rate = current_domain.repository_for(ShippingRate).get(command.shipping_rate_id)

        pricer = CheckoutPricer()
        pricer.validate_stock(checkout)
        checkout.select_shipping(pricer.quote_shipping(checkout, rate))
        repo.add(checkout)
