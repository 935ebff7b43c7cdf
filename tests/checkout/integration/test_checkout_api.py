"""Integration tests for the checkout API via TestClient."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from protean import current_domain

from storefront.api import checkout_router, order_router, register_error_handlers
from storefront.catalogue.variant import ProductVariant
from storefront.order.order import Order, OrderStatus
from storefront.shipping.rate import ShippingRate

CARD = {
    "provider": "mock",
    "payment_method": "credit_card",
    "card_number": "4242424242424242",
    "card_expiry_month": 12,
    "card_expiry_year": 2030,
    "card_cvv": "123",
}


@pytest.fixture()
def client():
    app = FastAPI()
    register_error_handlers(app)
    app.include_router(checkout_router)
    app.include_router(order_router)
    return TestClient(app)


@pytest.fixture()
def stocked(make_variant):
    return make_variant(sku="TSHIRT-BLK-M", price=1999, stock=10)


def _fill(client, quantity=2, email="buyer@example.com"):
    response = client.post("/checkout/items", json={"sku": "TSHIRT-BLK-M", "quantity": quantity})
    assert response.status_code == 200
    if email:
        response = client.put("/checkout/customer-details", json={"email": email, "full_name": "Ada Buyer"})
        assert response.status_code == 200
    return response.json()


class TestSessionCheckout:
    def test_first_visit_creates_empty_checkout(self, client):
        response = client.get("/checkout")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "active"
        assert body["items"] == []
        assert body["currency"] == "USD"
        assert body["final_amount"] == 0
        assert client.cookies.get("checkout_session_id") == body["session_id"]

    def test_cookie_keeps_the_same_checkout(self, client):
        first = client.get("/checkout").json()
        second = client.get("/checkout").json()
        assert first["id"] == second["id"]

    def test_separate_sessions_get_separate_checkouts(self, client):
        other = TestClient(client.app)
        assert client.get("/checkout").json()["id"] != other.get("/checkout").json()["id"]

    def test_user_header_attaches_user(self, client):
        body = client.get("/checkout", headers={"X-User-Id": "user-42"}).json()
        assert body["user_id"] == "user-42"


class TestItemsAPI:
    def test_add_item(self, client, stocked):
        response = client.post("/checkout/items", json={"sku": "TSHIRT-BLK-M", "quantity": 2})
        assert response.status_code == 200
        body = response.json()
        (item,) = body["items"]
        assert item["sku"] == "TSHIRT-BLK-M"
        assert item["quantity"] == 2
        assert item["subtotal"] == 3998
        assert body["subtotal"] == 3998
        assert body["final_amount"] == 3998

    def test_update_and_remove_item(self, client, stocked):
        client.post("/checkout/items", json={"sku": "TSHIRT-BLK-M", "quantity": 2})

        response = client.put("/checkout/items/TSHIRT-BLK-M", json={"quantity": 3})
        assert response.json()["subtotal"] == 5997

        response = client.delete("/checkout/items/TSHIRT-BLK-M")
        assert response.json()["items"] == []

    def test_clear(self, client, stocked):
        client.post("/checkout/items", json={"sku": "TSHIRT-BLK-M", "quantity": 1})
        response = client.delete("/checkout")
        assert response.status_code == 200
        assert response.json()["items"] == []

    def test_unknown_sku_is_not_found(self, client):
        response = client.post("/checkout/items", json={"sku": "NOPE", "quantity": 1})
        assert response.status_code == 404

    def test_quantity_above_stock_rejected(self, client, stocked):
        response = client.post("/checkout/items", json={"sku": "TSHIRT-BLK-M", "quantity": 11})
        assert response.status_code == 400
        assert "error" in response.json()

    def test_zero_quantity_fails_request_validation(self, client, stocked):
        response = client.post("/checkout/items", json={"sku": "TSHIRT-BLK-M", "quantity": 0})
        assert response.status_code == 422


class TestDetailsAPI:
    def test_shipping_address_is_stored_uppercased(self, client):
        response = client.put(
            "/checkout/shipping-address",
            json={"street_address": "1 Main St", "city": "Copenhagen", "postal_code": "1050", "country": "dk"},
        )
        assert response.status_code == 200
        assert response.json()["shipping_address"]["country"] == "DK"

    def test_invalid_email_rejected(self, client):
        response = client.put("/checkout/customer-details", json={"email": "not-an-email"})
        assert response.status_code == 400


class TestShippingAPI:
    @pytest.fixture()
    def standard_rate(self):
        rate = ShippingRate.create(name="Standard", currency_code="USD", base_rate=500, countries=["US", "DK"])
        current_domain.repository_for(ShippingRate).add(rate)
        return rate

    def test_options_require_a_destination(self, client, stocked):
        response = client.get("/checkout/shipping-options")
        assert response.status_code == 400

    def test_options_for_country(self, client, stocked, standard_rate):
        client.post("/checkout/items", json={"sku": "TSHIRT-BLK-M", "quantity": 1})

        response = client.get("/checkout/shipping-options", params={"country": "us"})

        assert response.status_code == 200
        (option,) = response.json()
        assert option["shipping_rate_id"] == str(standard_rate.id)
        assert option["cost"] == 500

    def test_select_shipping_method(self, client, stocked, standard_rate):
        client.post("/checkout/items", json={"sku": "TSHIRT-BLK-M", "quantity": 2})
        client.put(
            "/checkout/shipping-address",
            json={"street_address": "1 Main St", "city": "Austin", "postal_code": "73301", "country": "US"},
        )

        response = client.put("/checkout/shipping-method", json={"shipping_rate_id": str(standard_rate.id)})

        assert response.status_code == 200
        body = response.json()
        assert body["shipping_cost"] == 500
        assert body["final_amount"] == 4498


class TestDiscountAPI:
    @pytest.fixture()
    def save20(self):
        from storefront.pricing.discount import Discount, DiscountMethod

        discount = Discount.create(
            code="SAVE20", method=DiscountMethod.FIXED.value, value=2000, currency_code="USD", min_order_value=10000
        )
        current_domain.repository_for(Discount).add(discount)
        return discount

    def test_minimum_not_met(self, client, stocked, save20):
        _fill(client, quantity=3)
        response = client.post("/checkout/discount", json={"code": "save20"})
        assert response.status_code == 400

    def test_apply_and_remove(self, client, make_variant, save20):
        make_variant(sku="JACKET-L", price=15000)
        client.post("/checkout/items", json={"sku": "JACKET-L", "quantity": 1})

        response = client.post("/checkout/discount", json={"code": "save20"})
        assert response.status_code == 200
        assert response.json() == {"code": "SAVE20", "discount_amount": 2000}
        assert client.get("/checkout").json()["final_amount"] == 13000

        response = client.delete("/checkout/discount")
        assert response.json()["discount_amount"] == 0
        assert response.json()["applied_discount"] is None


class TestCurrencyAPI:
    def test_change_currency(self, client, stocked):
        client.post("/checkout/items", json={"sku": "TSHIRT-BLK-M", "quantity": 2})

        response = client.put("/checkout/currency", json={"currency": "dkk"})

        assert response.status_code == 200
        body = response.json()
        assert body["currency"] == "DKK"
        assert body["subtotal"] == 27586

    def test_unknown_currency_rejected(self, client):
        response = client.put("/checkout/currency", json={"currency": "JPY"})
        assert response.status_code == 400


class TestCompleteCheckoutAPI:
    def test_successful_payment_creates_paid_order(self, client, stocked, fake_gateway):
        _fill(client)
        checkout_id = client.get("/checkout").json()["id"]

        response = client.post("/checkout/complete", json=CARD)

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == OrderStatus.PAID.value
        assert body["payment_status"] == "authorized"
        assert body["order_number"].startswith("ORD-")
        order = current_domain.repository_for(Order).get(body["order_id"])
        assert order.final_amount == 3998
        assert current_domain.repository_for(ProductVariant).find_by_sku("TSHIRT-BLK-M").stock == 8

        # The session moves on to a fresh checkout
        fresh = client.get("/checkout").json()
        assert fresh["id"] != checkout_id
        assert fresh["items"] == []

    def test_declined_payment_returns_402(self, client, stocked, fake_gateway):
        fake_gateway.configure(should_succeed=False, failure_reason="Insufficient funds")
        _fill(client)

        response = client.post("/checkout/complete", json=CARD)

        assert response.status_code == 402
        body = response.json()
        assert body["message"] == "Payment failed"
        assert "Insufficient funds" not in response.text
        assert current_domain.repository_for(Order).get(body["order_id"]).status == OrderStatus.FAILED.value

    def test_requires_action_returns_202(self, client, stocked, fake_gateway):
        fake_gateway.configure(requires_action=True)
        _fill(client)

        response = client.post("/checkout/complete", json=CARD)

        assert response.status_code == 202
        body = response.json()
        assert body["status"] == OrderStatus.PENDING.value
        assert body["action_url"].startswith("https://")

    def test_missing_email_rejected_before_order(self, client, stocked, fake_gateway):
        _fill(client, email=None)

        response = client.post("/checkout/complete", json=CARD)

        assert response.status_code == 400
        assert "customer_email" in response.json()["error"]
        assert current_domain.repository_for(Order).find_by_status() == []

    def test_disabled_provider_rejected(self, client, stocked, fake_gateway):
        _fill(client)
        response = client.post("/checkout/complete", json={**CARD, "provider": "stripe"})
        assert response.status_code == 400

    def test_unknown_payment_method_rejected(self, client, stocked, fake_gateway):
        _fill(client)
        response = client.post("/checkout/complete", json={**CARD, "payment_method": "cheque"})
        assert response.status_code == 400
        assert "payment_method" in response.json()["error"]

    def test_empty_checkout_is_a_conflict(self, client, fake_gateway):
        client.put("/checkout/customer-details", json={"email": "buyer@example.com"})
        response = client.post("/checkout/complete", json=CARD)
        assert response.status_code == 409

    def test_buyer_can_view_order_with_session_cookie(self, client, stocked, fake_gateway):
        _fill(client)
        order_id = client.post("/checkout/complete", json=CARD).json()["order_id"]

        assert client.get(f"/orders/{order_id}").status_code == 200
        assert TestClient(client.app).get(f"/orders/{order_id}").status_code == 404


class TestUnpayableCompletionAPI:
    """Requests the provider could never accept leave the cart untouched."""

    def _assert_nothing_converted(self, client):
        assert current_domain.repository_for(Order).find_by_status() == []
        assert current_domain.repository_for(ProductVariant).find_by_sku("TSHIRT-BLK-M").stock == 10
        checkout = client.get("/checkout").json()
        assert checkout["status"] == "active"
        assert checkout["items"][0]["quantity"] == 2

    @pytest.mark.parametrize(
        "payment, field",
        [
            ({**CARD, "card_cvv": None}, "card_details"),
            ({"provider": "mock", "payment_method": "credit_card"}, "card_details"),
            ({"provider": "mock", "payment_method": "wallet"}, "phone_number"),
            ({"provider": "mock", "payment_method": "wallet", "phone_number": "12-34"}, "phone_number"),
        ],
    )
    def test_invalid_payment_details(self, client, stocked, fake_gateway, payment, field):
        _fill(client)

        response = client.post("/checkout/complete", json=payment)

        assert response.status_code == 400
        assert field in response.json()["error"]
        assert fake_gateway.calls == []
        self._assert_nothing_converted(client)

    def test_zero_total(self, client, stocked, fake_gateway):
        from storefront.pricing.discount import Discount, DiscountMethod

        discount = Discount.create(
            code="ONTHEHOUSE", method=DiscountMethod.PERCENTAGE.value, value=100, currency_code="USD"
        )
        current_domain.repository_for(Discount).add(discount)
        _fill(client)
        client.post("/checkout/discount", json={"code": "onthehouse"})
        assert client.get("/checkout").json()["final_amount"] == 0

        response = client.post("/checkout/complete", json=CARD)

        assert response.status_code == 400
        assert "amount" in response.json()["error"]
        self._assert_nothing_converted(client)
