import pytest
from protean import current_domain
from protean.exceptions import ValidationError

from storefront.catalogue.variant import ProductVariant
from storefront.checkout.checkout import Checkout
from storefront.checkout.currency import ChangeCheckoutCurrency
from storefront.checkout.details import SelectShippingMethod
from storefront.checkout.discounts import ApplyDiscountCode
from storefront.money.management import DisableCurrency
from storefront.pricing.management import CreateDiscount
from storefront.shipping.management import CreateShippingRate


def _process(command):
    return current_domain.process(command, asynchronous=False)


def _checkout(checkout_id):
    return current_domain.repository_for(Checkout).get(checkout_id)


class TestChangeCheckoutCurrency:
    def test_converts_lines_and_totals(self, filled_checkout):
        checkout_id = filled_checkout()

        assert _process(ChangeCheckoutCurrency(checkout_id=checkout_id, currency="dkk")) == "DKK"

        checkout = _checkout(checkout_id)
        assert checkout.currency == "DKK"
        # 19.99 USD -> 137.93 DKK per unit
        assert checkout.find_item("TSHIRT-BLK-M").price == 13793
        assert checkout.subtotal == 27586
        assert checkout.final_amount == 27586

    def test_explicit_variant_price_used(self, filled_checkout):
        checkout_id = filled_checkout()
        variant = current_domain.repository_for(ProductVariant).get_by_sku("TSHIRT-BLK-M")
        variant.set_price("EUR", 1800)
        current_domain.repository_for(ProductVariant).add(variant)

        _process(ChangeCheckoutCurrency(checkout_id=checkout_id, currency="EUR"))

        assert _checkout(checkout_id).subtotal == 3600

    def test_shipping_quote_converted(self, filled_checkout):
        checkout_id = filled_checkout()
        rate_id = _process(CreateShippingRate(name="Standard", base_rate=495))
        _process(SelectShippingMethod(checkout_id=checkout_id, shipping_rate_id=rate_id))

        _process(ChangeCheckoutCurrency(checkout_id=checkout_id, currency="DKK"))

        checkout = _checkout(checkout_id)
        assert checkout.shipping_cost == 3416
        assert checkout.final_amount == 27586 + 3416

    def test_same_currency_is_a_no_op(self, filled_checkout):
        checkout_id = filled_checkout()
        assert _process(ChangeCheckoutCurrency(checkout_id=checkout_id, currency="usd")) == "USD"
        assert _checkout(checkout_id).subtotal == 3998

    def test_unsupported_currency_rejected(self, filled_checkout):
        checkout_id = filled_checkout()
        with pytest.raises(ValidationError) as exc:
            _process(ChangeCheckoutCurrency(checkout_id=checkout_id, currency="JPY"))
        assert "currency" in exc.value.messages
        assert _checkout(checkout_id).currency == "USD"

    def test_disabled_currency_rejected(self, filled_checkout):
        checkout_id = filled_checkout()
        _process(DisableCurrency(code="EUR"))
        with pytest.raises(ValidationError):
            _process(ChangeCheckoutCurrency(checkout_id=checkout_id, currency="EUR"))

    def test_inactive_product_blocks_change(self, filled_checkout):
        checkout_id = filled_checkout()
        repo = current_domain.repository_for(ProductVariant)
        variant = repo.get_by_sku("TSHIRT-BLK-M")
        variant.is_active = False
        repo.add(variant)

        with pytest.raises(ValidationError) as exc:
            _process(ChangeCheckoutCurrency(checkout_id=checkout_id, currency="DKK"))
        assert "TSHIRT-BLK-M" in exc.value.messages["currency"][0]


class TestCurrencyRoundTrip:
    def test_usd_to_dkk_and_back_restores_totals(self, filled_checkout):
        checkout_id = filled_checkout()
        rate_id = _process(CreateShippingRate(name="Standard", base_rate=495))
        _process(SelectShippingMethod(checkout_id=checkout_id, shipping_rate_id=rate_id))
        before = _checkout(checkout_id)

        _process(ChangeCheckoutCurrency(checkout_id=checkout_id, currency="DKK"))
        _process(ChangeCheckoutCurrency(checkout_id=checkout_id, currency="USD"))

        after = _checkout(checkout_id)
        assert after.currency == "USD"
        assert after.find_item("TSHIRT-BLK-M").price == 1999
        assert after.subtotal == before.subtotal == 3998
        assert after.shipping_cost == before.shipping_cost == 495
        assert after.final_amount == before.final_amount

    def test_discount_requoted_in_new_currency(self, filled_checkout):
        checkout_id = filled_checkout()
        _process(CreateDiscount(code="TENOFF", method="percentage", value=10))
        _process(ApplyDiscountCode(checkout_id=checkout_id, code="TENOFF"))

        _process(ChangeCheckoutCurrency(checkout_id=checkout_id, currency="DKK"))

        checkout = _checkout(checkout_id)
        assert checkout.discount_amount == 2759
        assert checkout.final_amount == 27586 - 2759
