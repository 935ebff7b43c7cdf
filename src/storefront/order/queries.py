"""Order reads.

Viewers only ever see their own orders: a lookup that fails the ownership
check reports the order as missing rather than forbidden.
"""

from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from storefront.order.order import Order, OrderStatus


def get_order_for_viewer(order_id, user_id=None, is_admin=False, session_id=None) -> Order:
    repo = current_domain.repository_for(Order)
    order = repo.get(order_id)
    if not order.is_visible_to(user_id=user_id, is_admin=is_admin, session_id=session_id):
        raise ObjectNotFoundError(f"Order {order_id} does not exist")
    return order


def list_orders_for_user(user_id) -> list[Order]:
    if not user_id:
        return []
    return current_domain.repository_for(Order).find_for_user(str(user_id))


def list_orders(status: str | None = None) -> list[Order]:
    """All orders, newest first, optionally filtered by status."""
    order_status = None
    if status:
        try:
            order_status = OrderStatus(status)
        except ValueError:
            raise ValidationError({"status": [f"Unknown order status: {status}"]}) from None
    return current_domain.repository_for(Order).find_by_status(order_status)


def get_order_by_payment_id(payment_id: str) -> Order:
    order = current_domain.repository_for(Order).find_by_payment_id(payment_id)
    if order is None:
        raise ObjectNotFoundError(f"No order found for payment {payment_id}")
    return order
