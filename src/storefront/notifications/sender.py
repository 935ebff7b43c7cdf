"""Order notification senders.

The storefront only ever tells buyers two things: that their order is paid
and confirmed, and that it has shipped. Delivery goes through a
``NotificationSender``; the logging sender is the default, the fake sender
records messages for tests.
"""

from abc import ABC, abstractmethod

import structlog

logger = structlog.get_logger(__name__)


class NotificationError(Exception):
    """A notification could not be delivered."""


class NotificationSender(ABC):
    """Abstract interface for order notification delivery."""

    @abstractmethod
    def send_order_confirmation(self, order) -> None: ...

    @abstractmethod
    def send_order_shipped(self, order) -> None: ...


def _recipient(order) -> str | None:
    return order.customer.email if order.customer else None


class LoggingNotificationSender(NotificationSender):
    def send_order_confirmation(self, order) -> None:
        logger.info(
            "Order confirmation sent",
            order_id=str(order.id),
            order_number=order.order_number,
            recipient=_recipient(order),
            final_amount=order.final_amount,
            currency=order.currency,
        )

    def send_order_shipped(self, order) -> None:
        logger.info(
            "Order shipped notification sent",
            order_id=str(order.id),
            order_number=order.order_number,
            recipient=_recipient(order),
            tracking_number=order.tracking_number,
        )


class FakeNotificationSender(NotificationSender):
    """Sender that records notifications in memory for test assertions."""

    def __init__(self):
        self.sent: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "Notification delivery failed"

    def configure(self, should_succeed: bool = True, failure_reason: str = "Notification delivery failed"):
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def _send(self, kind: str, order) -> None:
        if not self.should_succeed:
            raise NotificationError(self.failure_reason)
        self.sent.append(
            {
                "kind": kind,
                "order_id": str(order.id),
                "order_number": order.order_number,
                "recipient": _recipient(order),
            }
        )

    def send_order_confirmation(self, order) -> None:
        self._send("order_confirmation", order)

    def send_order_shipped(self, order) -> None:
        self._send("order_shipped", order)

    def reset(self):
        """Clear sent notifications (useful between tests)."""
        self.sent.clear()
        self.should_succeed = True
        self.failure_reason = "Notification delivery failed"


_current_sender: NotificationSender | None = None


def get_sender() -> NotificationSender:
    """Return the active sender. Defaults to LoggingNotificationSender."""
    global _current_sender
    if _current_sender is None:
        _current_sender = LoggingNotificationSender()
    return _current_sender


def set_sender(sender: NotificationSender) -> None:
    """Override the active sender (useful for tests)."""
    global _current_sender
    _current_sender = sender


def reset_sender() -> None:
    global _current_sender
    _current_sender = None
