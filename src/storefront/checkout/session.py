"""Session resolution: find or start the checkout bound to a session."""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from storefront.checkout.checkout import Checkout
from storefront.checkout.pricing import CheckoutPricer
from storefront.config import default_currency_code
from storefront.domain import storefront
from storefront.payment.gateway import get_gateways

logger = structlog.get_logger(__name__)


@storefront.command(part_of="Checkout")
class ResolveCheckout:
    """Return the active checkout for a session, creating one if none exists."""

    session_id = String(required=True, max_length=255)
    user_id = Identifier()
    currency = String(max_length=3)


@storefront.command(part_of="Checkout")
class SetPaymentProvider:
    checkout_id = Identifier(required=True)
    provider = String(required=True, max_length=50)


@storefront.command_handler(part_of=Checkout)
class CheckoutSessionHandler:
    @handle(ResolveCheckout)
    def resolve_checkout(self, command):
        repo = current_domain.repository_for(Checkout)
        checkout = repo.find_active_by_session(command.session_id)

        if checkout is not None:
            if command.user_id and not checkout.user_id:
                checkout.attach_user(command.user_id)
                repo.add(checkout)
            return str(checkout.id)

        checkout = Checkout.create(
            session_id=command.session_id,
            currency=command.currency or default_currency_code(),
            user_id=command.user_id,
        )
        repo.add(checkout)
        logger.info(
            "Checkout started",
            checkout_id=str(checkout.id),
            session_id=command.session_id,
            currency=checkout.currency,
        )
        return str(checkout.id)

    @handle(SetPaymentProvider)
    def set_payment_provider(self, command):
        # Reject unknown or disabled providers early
        get_gateways().get(command.provider)

        repo = current_domain.repository_for(Checkout)
        checkout = repo.get(command.checkout_id)
        checkout.set_payment_provider(command.provider)
        CheckoutPricer().refresh(checkout)
        repo.add(checkout)
