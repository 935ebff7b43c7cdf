"""Storefront HTTP API package."""

from storefront.api.checkout import checkout_router
from storefront.api.errors import register_error_handlers
from storefront.api.maintenance import maintenance_router
from storefront.api.orders import order_router
from storefront.api.payments import payment_router, webhook_router

__all__ = [
    "checkout_router",
    "order_router",
    "payment_router",
    "webhook_router",
    "maintenance_router",
    "register_error_handlers",
]
