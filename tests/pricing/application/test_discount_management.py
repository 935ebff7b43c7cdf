import json

import pytest
from protean import current_domain
from protean.exceptions import ObjectNotFoundError, ValidationError

from storefront.pricing.discount import Discount
from storefront.pricing.management import CreateDiscount, DeactivateDiscount


def _process(command):
    return current_domain.process(command, asynchronous=False)


def _discount(code):
    return current_domain.repository_for(Discount).find_by_code(code)


class TestCreateDiscount:
    def test_defaults_to_shop_currency(self):
        _process(CreateDiscount(code="welcome10", method="percentage", value=10))

        discount = _discount("WELCOME10")
        assert discount.currency_code == "USD"
        assert discount.discount_type == "basket"

    def test_product_discount(self):
        _process(
            CreateDiscount(
                code="MUGS",
                method="fixed",
                value=200,
                discount_type="product",
                product_ids=json.dumps(["p-1", "p-2"]),
            )
        )
        assert _discount("mugs").eligible_product_ids == frozenset({"p-1", "p-2"})

    def test_duplicate_code_rejected(self):
        _process(CreateDiscount(code="SAVE20", method="fixed", value=2000, min_order_value=10000))
        with pytest.raises(ValidationError) as exc:
            _process(CreateDiscount(code="save20", method="fixed", value=500))
        assert "code" in exc.value.messages


class TestDeactivateDiscount:
    def test_deactivate(self):
        _process(CreateDiscount(code="SAVE20", method="fixed", value=2000))
        _process(DeactivateDiscount(code="save20"))
        assert _discount("SAVE20").active is False

    def test_unknown_code(self):
        with pytest.raises(ObjectNotFoundError):
            _process(DeactivateDiscount(code="NOPE"))
