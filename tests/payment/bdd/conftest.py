"""Shared BDD fixtures and step definitions for the payment ledger."""

import pytest
from protean import current_domain
from pytest_bdd import given

from storefront.order.order import Order
from storefront.payment.submission import SubmitPayment


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def ledger():
    """Container for the outcome of the latest delivery."""
    return {"outcome": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("a paid order awaiting capture", target_fixture="order")
def order_awaiting_capture(paid_order):
    return paid_order()


@given("a captured order", target_fixture="order")
def captured_order(paid_order):
    return paid_order(capture_immediately=True)


@given("an order waiting for the buyer to approve payment", target_fixture="order")
def order_awaiting_approval(placed_order, fake_gateway):
    fake_gateway.configure(requires_action=True)
    order_id = placed_order()
    current_domain.process(
        SubmitPayment(order_id=order_id, provider="mock", payment_method="wallet", phone_number="+4512345678"),
        asynchronous=False,
    )
    return current_domain.repository_for(Order).get(order_id)
