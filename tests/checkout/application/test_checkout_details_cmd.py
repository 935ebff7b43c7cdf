import json

import pytest
from protean import current_domain
from protean.exceptions import ValidationError

from storefront.checkout.checkout import Checkout
from storefront.checkout.details import (
    SelectShippingMethod,
    SetBillingAddress,
    SetCustomerDetails,
    SetShippingAddress,
)
from storefront.checkout.items import AddCheckoutItem
from storefront.shipping.management import CreateShippingRate


def _process(command):
    return current_domain.process(command, asynchronous=False)


def _checkout(checkout_id):
    return current_domain.repository_for(Checkout).get(checkout_id)


def _address(checkout_id, command_cls=SetShippingAddress, country="us"):
    return command_cls(
        checkout_id=checkout_id,
        street_address="1 Main St",
        city="Springfield",
        state="IL",
        postal_code="62701",
        country=country,
    )


def _rate(name="Standard", countries=None, **kwargs):
    return _process(CreateShippingRate(name=name, countries=json.dumps(countries or []), **kwargs))


class TestAddressesAndContact:
    def test_shipping_and_billing_address(self, new_checkout):
        checkout_id = new_checkout()
        _process(_address(checkout_id))
        _process(_address(checkout_id, SetBillingAddress, country="ca"))

        checkout = _checkout(checkout_id)
        assert checkout.shipping_address.country == "US"
        assert checkout.billing_address.country == "CA"

    def test_customer_details(self, new_checkout):
        checkout_id = new_checkout()
        _process(SetCustomerDetails(checkout_id=checkout_id, email="ada@example.com", phone="+4512345678"))
        assert _checkout(checkout_id).customer_details.email == "ada@example.com"

    def test_invalid_email_rejected(self, new_checkout):
        with pytest.raises(ValidationError) as exc:
            _process(SetCustomerDetails(checkout_id=new_checkout(), email="not-an-email"))
        assert "email" in exc.value.messages


class TestShippingSelection:
    def test_select_shipping_adds_cost(self, filled_checkout):
        checkout_id = filled_checkout()
        rate_id = _rate(base_rate=495)

        _process(SelectShippingMethod(checkout_id=checkout_id, shipping_rate_id=rate_id))

        checkout = _checkout(checkout_id)
        assert checkout.shipping_option.name == "Standard"
        assert checkout.shipping_cost == 495
        assert checkout.final_amount == 3998 + 495

    def test_rate_not_serving_destination_rejected(self, filled_checkout):
        checkout_id = filled_checkout()
        _process(_address(checkout_id, country="DK"))
        rate_id = _rate(base_rate=495, countries=["US"])

        with pytest.raises(ValidationError) as exc:
            _process(SelectShippingMethod(checkout_id=checkout_id, shipping_rate_id=rate_id))
        assert "shipping_method" in exc.value.messages

    def test_address_change_clears_unserved_rate(self, filled_checkout):
        checkout_id = filled_checkout()
        rate_id = _rate(base_rate=495, countries=["US"])
        _process(SelectShippingMethod(checkout_id=checkout_id, shipping_rate_id=rate_id))

        _process(_address(checkout_id, country="DK"))

        checkout = _checkout(checkout_id)
        assert checkout.shipping_option is None
        assert checkout.final_amount == 3998

    def test_quote_follows_cart_into_free_shipping(self, filled_checkout):
        checkout_id = filled_checkout()
        rate_id = _rate(base_rate=495, free_shipping_threshold=5000)
        _process(SelectShippingMethod(checkout_id=checkout_id, shipping_rate_id=rate_id))

        _process(AddCheckoutItem(checkout_id=checkout_id, sku="TSHIRT-BLK-M", quantity=1))

        checkout = _checkout(checkout_id)
        assert checkout.subtotal == 5997
        assert checkout.shipping_cost == 0
        assert checkout.shipping_option.free_shipping is True


class TestEveryChangeRepricesTheCheckout:
    def _short_stock(self, sku="TSHIRT-BLK-M", stock=1):
        from storefront.catalogue.variant import ProductVariant

        repo = current_domain.repository_for(ProductVariant)
        variant = repo.get_by_sku(sku)
        variant.stock = stock
        repo.add(variant)

    def test_customer_details_recheck_stock(self, filled_checkout):
        checkout_id = filled_checkout()
        self._short_stock()

        with pytest.raises(ValidationError) as exc:
            _process(SetCustomerDetails(checkout_id=checkout_id, email="other@example.com"))
        assert "quantity" in exc.value.messages
        assert _checkout(checkout_id).customer_details.email == "buyer@example.com"

    def test_billing_address_rechecks_stock(self, filled_checkout):
        checkout_id = filled_checkout()
        self._short_stock()

        with pytest.raises(ValidationError):
            _process(_address(checkout_id, SetBillingAddress))
        assert _checkout(checkout_id).billing_address is None

    def test_billing_address_requotes_shipping(self, filled_checkout):
        checkout_id = filled_checkout()
        rate_id = _rate(base_rate=495, free_shipping_threshold=3000)
        _process(SelectShippingMethod(checkout_id=checkout_id, shipping_rate_id=rate_id))
        assert _checkout(checkout_id).shipping_cost == 0

        from storefront.shipping.rate import ShippingRate

        rates = current_domain.repository_for(ShippingRate)
        rate = rates.get(rate_id)
        rate.free_shipping_threshold = 10000
        rates.add(rate)

        _process(_address(checkout_id, SetBillingAddress))

        checkout = _checkout(checkout_id)
        assert checkout.shipping_cost == 495
        assert checkout.final_amount == 3998 + 495
