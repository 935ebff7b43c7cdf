"""Integration tests for Order API endpoints via TestClient."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from storefront.api import order_router, register_error_handlers
from storefront.order.order import OrderStatus

ADMIN = {"X-User-Role": "admin"}


@pytest.fixture()
def client():
    app = FastAPI()
    register_error_handlers(app)
    app.include_router(order_router)
    return TestClient(app)


class TestOrderVisibility:
    def test_owner_can_view(self, client, paid_order):
        order = paid_order(user_id="user-1")

        response = client.get(f"/orders/{order.id}", headers={"X-User-Id": "user-1"})

        assert response.status_code == 200
        body = response.json()
        assert body["order_number"] == order.order_number
        assert body["final_amount"] == 3998
        assert body["items"][0]["sku"] == "TSHIRT-BLK-M"

    def test_other_user_gets_not_found(self, client, paid_order):
        order = paid_order(user_id="user-1")
        response = client.get(f"/orders/{order.id}", headers={"X-User-Id": "user-2"})
        assert response.status_code == 404

    def test_anonymous_caller_gets_not_found(self, client, paid_order):
        order = paid_order(user_id="user-1")
        assert client.get(f"/orders/{order.id}").status_code == 404

    def test_admin_can_view_any_order(self, client, paid_order):
        order = paid_order(user_id="user-1")
        assert client.get(f"/orders/{order.id}", headers=ADMIN).status_code == 200

    def test_unknown_order(self, client):
        assert client.get("/orders/missing", headers=ADMIN).status_code == 404


class TestOrderListing:
    def test_user_sees_only_own_orders(self, client, paid_order):
        mine = paid_order(user_id="user-1")
        paid_order(user_id="user-2")

        response = client.get("/orders", headers={"X-User-Id": "user-1"})

        assert response.status_code == 200
        assert [o["id"] for o in response.json()] == [str(mine.id)]

    def test_anonymous_listing_is_empty(self, client, paid_order):
        paid_order(user_id="user-1")
        assert client.get("/orders").json() == []

    def test_admin_sees_everything_and_filters_by_status(self, client, paid_order, placed_order):
        paid_order(user_id="user-1")
        placed_order(user_id="user-2")

        assert len(client.get("/orders", headers=ADMIN).json()) == 2
        pending = client.get("/orders", params={"status": "pending"}, headers=ADMIN).json()
        assert [o["status"] for o in pending] == [OrderStatus.PENDING.value]


class TestFulfillmentAPI:
    def test_ship_requires_admin(self, client, paid_order):
        order = paid_order()
        response = client.put(f"/orders/{order.id}/ship", json={"tracking_number": "TRK-1"})
        assert response.status_code == 403

    def test_ship_then_complete(self, client, paid_order):
        order = paid_order()

        response = client.put(f"/orders/{order.id}/ship", json={"tracking_number": "TRK-1"}, headers=ADMIN)
        assert response.status_code == 200
        assert response.json()["status"] == OrderStatus.SHIPPED.value
        assert response.json()["tracking_number"] == "TRK-1"

        response = client.put(f"/orders/{order.id}/complete", headers=ADMIN)
        assert response.status_code == 200
        assert response.json()["status"] == OrderStatus.COMPLETED.value

    def test_shipping_unpaid_order_is_a_conflict(self, client, placed_order):
        order_id = placed_order()
        response = client.put(f"/orders/{order_id}/ship", json={}, headers=ADMIN)
        assert response.status_code == 409

    def test_cancel_pending_order(self, client, placed_order):
        order_id = placed_order()
        response = client.put(f"/orders/{order_id}/cancel", headers=ADMIN)
        assert response.status_code == 200
        assert response.json()["status"] == OrderStatus.CANCELLED.value
