"""Buyer notifications driven by order events."""

from protean import current_domain

from storefront.order.fulfillment import ShipOrder
from storefront.order.order import Order, OrderStatus


def _ship(order_id, tracking_number="TRK-1"):
    current_domain.process(ShipOrder(order_id=order_id, tracking_number=tracking_number), asynchronous=False)


class TestOrderConfirmation:
    def test_sent_when_order_is_paid(self, paid_order, fake_sender):
        order = paid_order()

        (message,) = fake_sender.sent
        assert message["kind"] == "order_confirmation"
        assert message["order_id"] == str(order.id)
        assert message["order_number"] == order.order_number
        assert message["recipient"] == "buyer@example.com"

    def test_not_sent_for_unpaid_order(self, placed_order, fake_sender):
        placed_order()
        assert fake_sender.sent == []

    def test_not_sent_when_payment_declined(self, placed_order, fake_gateway, fake_sender):
        from storefront.payment.submission import SubmitPayment

        fake_gateway.configure(should_succeed=False)
        order_id = placed_order()
        current_domain.process(
            SubmitPayment(
                order_id=order_id,
                provider="mock",
                payment_method="credit_card",
                card_number="4000000000000002",
                card_expiry_month=12,
                card_expiry_year=2030,
                card_cvv="123",
            ),
            asynchronous=False,
        )

        assert fake_sender.sent == []


class TestShippedNotification:
    def test_sent_with_order_details(self, paid_order, fake_sender):
        order = paid_order()
        fake_sender.reset()

        _ship(order.id)

        (message,) = fake_sender.sent
        assert message["kind"] == "order_shipped"
        assert message["order_id"] == str(order.id)


class TestDeliveryFailures:
    def test_failed_confirmation_does_not_affect_order(self, paid_order, fake_sender):
        fake_sender.configure(should_succeed=False)

        order = paid_order()

        assert fake_sender.sent == []
        assert current_domain.repository_for(Order).get(order.id).status == OrderStatus.PAID.value

    def test_failed_shipped_notification_does_not_block_shipping(self, paid_order, fake_sender):
        order = paid_order()
        fake_sender.configure(should_succeed=False)

        _ship(order.id)

        assert current_domain.repository_for(Order).get(order.id).status == OrderStatus.SHIPPED.value
