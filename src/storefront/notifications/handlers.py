"""Order event handler that tells the buyer when an order is paid or shipped.

Notification failures never affect the order: they are logged and dropped.
"""

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from storefront.domain import storefront
from storefront.notifications.sender import NotificationError, get_sender
from storefront.order.events import OrderPaid, OrderShipped
from storefront.order.order import Order

logger = structlog.get_logger(__name__)


def _load_order(order_id) -> Order | None:
    try:
        return current_domain.repository_for(Order).get(order_id)
    except ObjectNotFoundError:
        logger.warning("Order for notification not found", order_id=str(order_id))
        return None


@storefront.event_handler(part_of=Order)
class OrderNotificationHandler:
    @handle(OrderPaid)
    def on_order_paid(self, event: OrderPaid) -> None:
        order = _load_order(event.order_id)
        if order is None:
            return
        try:
            get_sender().send_order_confirmation(order)
        except NotificationError as exc:
            logger.error("Order confirmation failed", order_id=str(event.order_id), error=str(exc))

    @handle(OrderShipped)
    def on_order_shipped(self, event: OrderShipped) -> None:
        order = _load_order(event.order_id)
        if order is None:
            return
        try:
            get_sender().send_order_shipped(order)
        except NotificationError as exc:
            logger.error("Shipped notification failed", order_id=str(event.order_id), error=str(exc))
