"""Integration tests for Payment API endpoints via TestClient."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from protean import current_domain

from storefront.api import payment_router, register_error_handlers
from storefront.order.order import Order, PaymentStatus

ADMIN = {"X-User-Role": "admin"}

pytestmark = pytest.mark.fast


@pytest.fixture()
def client():
    app = FastAPI()
    register_error_handlers(app)
    app.include_router(payment_router)
    return TestClient(app)


def _payment_status(order_id):
    return current_domain.repository_for(Order).get(order_id).payment_status


class TestProvidersAPI:
    def test_lists_enabled_providers(self, client, fake_gateway):
        response = client.get("/payments/providers")
        assert response.status_code == 200
        (provider,) = response.json()
        assert provider["type"] == "mock"
        assert "credit_card" in provider["methods"]

    def test_filters_by_currency(self, client, fake_gateway):
        assert len(client.get("/payments/providers", params={"currency": "dkk"}).json()) == 1
        assert client.get("/payments/providers", params={"currency": "JPY"}).json() == []


class TestPrivilegedOperations:
    @pytest.mark.parametrize("operation", ["capture", "cancel", "refund"])
    def test_require_admin(self, client, paid_order, operation):
        order = paid_order()
        response = client.post(f"/payments/{order.payment_id}/{operation}")
        assert response.status_code == 403
        assert _payment_status(order.id) == PaymentStatus.AUTHORIZED.value

    def test_capture(self, client, paid_order):
        order = paid_order()

        response = client.post(f"/payments/{order.payment_id}/capture", headers=ADMIN)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["operation"] == "capture"
        assert body["amount"] == 3998
        assert body["payment_status"] == PaymentStatus.CAPTURED.value

    def test_partial_refund(self, client, paid_order):
        order = paid_order(capture_immediately=True)

        response = client.post(f"/payments/{order.payment_id}/refund", json={"amount": 1000}, headers=ADMIN)

        assert response.status_code == 200
        assert response.json()["amount"] == 1000
        assert _payment_status(order.id) == PaymentStatus.REFUNDED.value

    def test_refund_above_remaining_rejected(self, client, paid_order):
        order = paid_order(capture_immediately=True)
        response = client.post(f"/payments/{order.payment_id}/refund", json={"amount": 5000}, headers=ADMIN)
        assert response.status_code == 400

    def test_cancel_authorization(self, client, paid_order):
        order = paid_order()
        response = client.post(f"/payments/{order.payment_id}/cancel", headers=ADMIN)
        assert response.status_code == 200
        assert _payment_status(order.id) == PaymentStatus.CANCELLED.value

    def test_capture_after_capture_is_a_conflict(self, client, paid_order):
        order = paid_order(capture_immediately=True)
        response = client.post(f"/payments/{order.payment_id}/capture", headers=ADMIN)
        assert response.status_code == 409

    def test_unknown_payment(self, client, fake_gateway):
        response = client.post("/payments/pi_missing/capture", headers=ADMIN)
        assert response.status_code == 404

    def test_provider_failure_is_a_bad_gateway(self, client, paid_order, fake_gateway):
        order = paid_order()
        fake_gateway.configure(should_succeed=False, failure_reason="Authorization expired")

        response = client.post(f"/payments/{order.payment_id}/capture", headers=ADMIN)

        assert response.status_code == 502
        assert response.json() == {"error": "Payment failed"}
        assert _payment_status(order.id) == PaymentStatus.AUTHORIZED.value


class TestForceApproveAPI:
    def test_force_approve_pending_payment(self, client, placed_order, fake_gateway):
        from storefront.payment.submission import SubmitPayment

        fake_gateway.configure(requires_action=True)
        order_id = placed_order()
        outcome = current_domain.process(
            SubmitPayment(order_id=order_id, provider="mock", payment_method="wallet", phone_number="+4512345678"),
            asynchronous=False,
        )

        response = client.post(
            f"/payments/{outcome.payment_id}/force-approve", json={"phone_number": "+4512345678"}, headers=ADMIN
        )

        assert response.status_code == 200
        assert response.json()["operation"] == "force_approve"
        assert fake_gateway.calls[-1]["method"] == "force_approve_payment"
        # The payment status only moves once the provider's webhook arrives
        assert _payment_status(order_id) == PaymentStatus.PENDING.value

    def test_force_approve_requires_phone_number(self, client, paid_order):
        order = paid_order()
        response = client.post(f"/payments/{order.payment_id}/force-approve", json={}, headers=ADMIN)
        assert response.status_code == 422
