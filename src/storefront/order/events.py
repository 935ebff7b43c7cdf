"""Domain events for the Order aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from storefront.domain import storefront


@storefront.event(part_of="Order")
class OrderPlaced:
    """A checkout was converted into a new order."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True, max_length=50)
    checkout_id = Identifier(required=True)
    user_id = Identifier()
    currency = String(required=True, max_length=3)
    final_amount = Integer(required=True)
    item_count = Integer(required=True)
    placed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderPaymentStatusChanged:
    """The payment status of an order advanced."""

    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True, max_length=20)
    new_status = String(required=True, max_length=20)
    payment_id = String(max_length=255)
    changed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderPaid:
    """The order's payment was authorized or captured."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True, max_length=50)
    payment_provider = String(max_length=50)
    final_amount = Integer(required=True)
    currency = String(required=True, max_length=3)
    paid_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderPaymentFailed:
    """Payment for the order failed; the order will not be fulfilled."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True, max_length=50)
    failed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderShipped:
    """The order left the warehouse."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True, max_length=50)
    tracking_number = String(max_length=255)
    shipped_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderCompleted:
    """The order was delivered and fully paid."""

    __version__ = 1

    order_id = Identifier(required=True)
    completed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderCancelled:
    """The order was cancelled."""

    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True, max_length=20)
    cancelled_at = DateTime(required=True)
