"""Order fulfilment — commands and handler.

Moves a paid order through shipment and completion.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.order.order import Order

logger = structlog.get_logger(__name__)


@storefront.command(part_of="Order")
class ShipOrder:
    """Record that a paid order has left the warehouse."""

    order_id = Identifier(required=True)
    tracking_number = String(max_length=255)


@storefront.command(part_of="Order")
class CompleteOrder:
    order_id = Identifier(required=True)


@storefront.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)


@storefront.command_handler(part_of=Order)
class OrderFulfillmentHandler:
    @handle(ShipOrder)
    def ship_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.ship(command.tracking_number)
        repo.add(order)
        logger.info("Order shipped", order_id=str(order.id), tracking_number=command.tracking_number)

    @handle(CompleteOrder)
    def complete_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.complete()
        repo.add(order)

    @handle(CancelOrder)
    def cancel_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.cancel()
        repo.add(order)
        logger.info("Order cancelled", order_id=str(order.id))
