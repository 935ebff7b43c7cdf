"""FastAPI routes for placed orders."""

from fastapi import APIRouter, Header, Request
from protean.utils.globals import current_domain

from storefront.api.access import is_admin, require_admin
from storefront.api.checkout import session_cookie_name
from storefront.api.schemas import OrderResponse, ShipOrderRequest, order_response
from storefront.order.fulfillment import CancelOrder, CompleteOrder, ShipOrder
from storefront.order.order import Order
from storefront.order.queries import get_order_for_viewer, list_orders, list_orders_for_user

order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.get("", response_model=list[OrderResponse])
async def get_orders(
    status: str | None = None,
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> list[OrderResponse]:
    """List orders: everything for administrators, the caller's own otherwise."""
    if is_admin(x_user_role):
        orders = list_orders(status)
    else:
        orders = list_orders_for_user(x_user_id)
    return [order_response(order) for order in orders]


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: str,
    request: Request,
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> OrderResponse:
    order = get_order_for_viewer(
        order_id,
        user_id=x_user_id,
        is_admin=is_admin(x_user_role),
        session_id=request.cookies.get(session_cookie_name()),
    )
    return order_response(order)


@order_router.put("/{order_id}/ship", response_model=OrderResponse)
async def ship_order(
    order_id: str,
    body: ShipOrderRequest,
    x_user_role: str | None = Header(default=None),
) -> OrderResponse:
    require_admin(x_user_role)
    current_domain.process(ShipOrder(order_id=order_id, tracking_number=body.tracking_number), asynchronous=False)
    return order_response(current_domain.repository_for(Order).get(order_id))


@order_router.put("/{order_id}/complete", response_model=OrderResponse)
async def complete_order(order_id: str, x_user_role: str | None = Header(default=None)) -> OrderResponse:
    require_admin(x_user_role)
    current_domain.process(CompleteOrder(order_id=order_id), asynchronous=False)
    return order_response(current_domain.repository_for(Order).get(order_id))


@order_router.put("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(order_id: str, x_user_role: str | None = Header(default=None)) -> OrderResponse:
    require_admin(x_user_role)
    current_domain.process(CancelOrder(order_id=order_id), asynchronous=False)
    return order_response(current_domain.repository_for(Order).get(order_id))
