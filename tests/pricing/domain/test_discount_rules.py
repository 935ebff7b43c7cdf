from datetime import UTC, datetime, timedelta

import pytest
from protean.exceptions import ValidationError

from storefront.money.currency import CurrencyConverter
from storefront.pricing.discount import Discount
from storefront.pricing.engine import PricedLine

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _lines(quantity=3, price=1999):
    return [PricedLine(sku="TSHIRT-BLK-M", quantity=quantity, price=price, product_id="p-1")]


def _save20(**overrides):
    params = dict(code="save20", method="fixed", value=2000, currency_code="usd", min_order_value=10000)
    params.update(overrides)
    return Discount.create(**params)


class TestDiscountCreation:
    def test_code_and_currency_normalized(self):
        discount = _save20()
        assert discount.code == "SAVE20"
        assert discount.currency_code == "USD"
        assert discount.active is True

    def test_percentage_over_hundred_rejected(self):
        with pytest.raises(ValidationError) as exc:
            Discount.create(code="HALF", method="percentage", value=150, currency_code="USD")
        assert "value" in exc.value.messages

    def test_product_discount_requires_products(self):
        with pytest.raises(ValidationError) as exc:
            Discount.create(code="TEE", method="fixed", value=100, currency_code="USD", discount_type="product")
        assert "product_ids" in exc.value.messages

    def test_end_before_start_rejected(self):
        with pytest.raises(ValidationError):
            _save20(start_date=NOW, end_date=NOW - timedelta(days=1))


class TestDiscountValidity:
    def test_minimum_order_value_not_met(self):
        # 3 x 19.99 = 59.97
        with pytest.raises(ValidationError) as exc:
            _save20().amount_for(_lines(), "USD", CurrencyConverter(), NOW)
        assert exc.value.messages["discount_code"] == ["Discount minimum order value not met"]

    def test_minimum_order_value_met(self):
        amount = _save20().amount_for(_lines(quantity=1, price=15000), "USD", CurrencyConverter(), NOW)
        assert amount == 2000

    def test_inactive(self):
        discount = _save20()
        discount.deactivate()
        with pytest.raises(ValidationError) as exc:
            discount.ensure_valid(NOW)
        assert "not active" in exc.value.messages["discount_code"][0]

    def test_not_yet_valid_and_expired(self):
        with pytest.raises(ValidationError) as exc:
            _save20(start_date=NOW + timedelta(days=1)).ensure_valid(NOW)
        assert "not yet valid" in exc.value.messages["discount_code"][0]

        with pytest.raises(ValidationError) as exc:
            _save20(end_date=NOW - timedelta(days=1)).ensure_valid(NOW)
        assert "expired" in exc.value.messages["discount_code"][0]

    def test_usage_limit(self):
        discount = _save20(usage_limit=1)
        discount.record_usage(NOW)
        assert discount.current_usage == 1

        with pytest.raises(ValidationError) as exc:
            discount.ensure_valid(NOW)
        assert "usage limit" in exc.value.messages["discount_code"][0]


class TestDiscountCurrency:
    def test_fixed_value_and_threshold_converted(self):
        # 100.00 USD minimum is 690.00 DKK; 20.00 USD off is 138.00 DKK
        lines = _lines(quantity=1, price=70000)
        assert _save20().amount_for(lines, "DKK", CurrencyConverter(), NOW) == 13800

    def test_converted_threshold_applies(self):
        lines = _lines(quantity=1, price=60000)
        with pytest.raises(ValidationError):
            _save20().amount_for(lines, "DKK", CurrencyConverter(), NOW)

    def test_percentage_is_not_converted(self):
        discount = Discount.create(code="TEN", method="percentage", value=10, currency_code="USD")
        terms = discount.terms_in("DKK", CurrencyConverter())
        assert terms.value == 10
