"""Storefront bounded context: checkout, orders and payments.

Handles the cart lifecycle, the conversion of a checkout into an immutable
order, payment submission through pluggable gateways, and the webhook-driven
payment transaction ledger.
"""

from protean.domain import Domain

from storefront.utils.logging import configure_logging, get_logger

configure_logging()

logger = get_logger(__name__)

# Domain Composition Root
storefront = Domain(name="storefront")
