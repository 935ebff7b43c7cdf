import os
from pathlib import Path
from uuid import uuid4

import pytest


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = str(Path(item.fspath))

        if "/domain/" in test_path:
            item.add_marker(pytest.mark.domain)
        elif "/application/" in test_path:
            item.add_marker(pytest.mark.application)
        elif "/bdd/" in test_path:
            item.add_marker(pytest.mark.bdd)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


@pytest.fixture(scope="session")
def _storefront_domain(request):
    """Initialize the storefront domain once per session."""
    os.environ["PROTEAN_ENV"] = request.config.option.env

    from storefront.domain import storefront

    storefront.init()
    return storefront


@pytest.fixture(scope="session", autouse=True)
def setup_db(_storefront_domain):
    from storefront.utils.db import drop_db, setup_db

    setup_db(_storefront_domain)

    yield

    drop_db(_storefront_domain)


@pytest.fixture(autouse=True)
def run_around_tests(_storefront_domain):
    """Push domain context before each test, cleanup after."""
    ctx = _storefront_domain.domain_context()
    ctx.push()

    yield

    from protean import current_domain

    from storefront.clock import reset_clock
    from storefront.notifications.sender import reset_sender
    from storefront.payment.gateway import reset_gateways

    for _, provider in current_domain.providers.items():
        provider._data_reset()

    for _, broker in current_domain.brokers.items():
        broker._data_reset()

    current_domain.event_store.store._data_reset()

    reset_gateways()
    reset_sender()
    reset_clock()
    ctx.pop()


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def currencies(run_around_tests):
    """USD as the base currency, plus EUR and DKK."""
    from protean import current_domain

    from storefront.money.currency import Currency

    repo = current_domain.repository_for(Currency)
    seeded = {
        "USD": Currency.create(code="USD", name="US Dollar", symbol="$", exchange_rate=1.0, is_default=True),
        "EUR": Currency.create(code="EUR", name="Euro", symbol="€", exchange_rate=0.92),
        "DKK": Currency.create(code="DKK", name="Danish Krone", symbol="kr", exchange_rate=6.9),
    }
    for currency in seeded.values():
        repo.add(currency)
    return seeded


@pytest.fixture
def make_variant():
    """Factory that stores a sellable product variant."""
    from protean import current_domain

    from storefront.catalogue.variant import ProductVariant

    def _make(sku="TSHIRT-BLK-M", price=1999, stock=10, weight=0.25, currency_code="USD", name=None, product_id=None):
        repo = current_domain.repository_for(ProductVariant)
        existing = repo.find_by_sku(sku)
        if existing is not None:
            return existing

        variant = ProductVariant.create(
            product_id=product_id or str(uuid4()),
            sku=sku,
            name=name or f"Product {sku}",
            price=price,
            currency_code=currency_code,
            stock=stock,
            weight=weight,
        )
        repo.add(variant)
        return variant

    return _make


@pytest.fixture
def fake_gateway():
    """Install a registry with only the fake provider enabled."""
    from storefront.payment.gateway import GatewayRegistry, set_gateways
    from storefront.payment.gateway.fake_adapter import FakeGateway

    gateway = FakeGateway()
    set_gateways(GatewayRegistry([gateway], disabled=["stripe", "mobilepay"]))
    return gateway


@pytest.fixture
def fake_sender():
    from storefront.notifications.sender import FakeNotificationSender, set_sender

    sender = FakeNotificationSender()
    set_sender(sender)
    return sender


# ---------------------------------------------------------------------------
# Checkout and order builders
# ---------------------------------------------------------------------------
@pytest.fixture
def new_checkout():
    """Factory returning the id of the active checkout for a session."""
    from protean import current_domain

    from storefront.checkout.session import ResolveCheckout

    def _new(session_id=None, user_id=None, currency=None):
        command = ResolveCheckout(session_id=session_id or f"sess-{uuid4().hex[:8]}", user_id=user_id, currency=currency)
        return current_domain.process(command, asynchronous=False)

    return _new


@pytest.fixture
def filled_checkout(new_checkout, make_variant):
    """Factory for a checkout holding ``lines`` of ``(sku, price, quantity)``."""
    from protean import current_domain

    from storefront.checkout.details import SetCustomerDetails
    from storefront.checkout.items import AddCheckoutItem

    def _fill(lines=(("TSHIRT-BLK-M", 1999, 2),), email="buyer@example.com", stock=10, **checkout_kwargs):
        checkout_id = new_checkout(**checkout_kwargs)
        for sku, price, quantity in lines:
            make_variant(sku=sku, price=price, stock=stock)
            current_domain.process(
                AddCheckoutItem(checkout_id=checkout_id, sku=sku, quantity=quantity), asynchronous=False
            )
        if email:
            current_domain.process(
                SetCustomerDetails(checkout_id=checkout_id, email=email, full_name="Ada Buyer"), asynchronous=False
            )
        return checkout_id

    return _fill


@pytest.fixture
def placed_order(filled_checkout):
    """Factory for a pending order converted from a filled checkout."""
    from protean import current_domain

    from storefront.checkout.session import SetPaymentProvider
    from storefront.order.conversion import ConvertCheckoutToOrder

    def _place(provider="mock", **fill_kwargs):
        checkout_id = filled_checkout(**fill_kwargs)
        if provider:
            current_domain.process(SetPaymentProvider(checkout_id=checkout_id, provider=provider), asynchronous=False)
        return current_domain.process(ConvertCheckoutToOrder(checkout_id=checkout_id), asynchronous=False)

    return _place


@pytest.fixture
def paid_order(placed_order, fake_gateway):
    """Factory for an order whose card payment went through the fake provider."""
    from protean import current_domain

    from storefront.order.order import Order
    from storefront.payment.submission import SubmitPayment

    def _pay(capture_immediately=False, **place_kwargs):
        fake_gateway.configure(capture_immediately=capture_immediately)
        order_id = placed_order(**place_kwargs)
        current_domain.process(
            SubmitPayment(
                order_id=order_id,
                provider="mock",
                payment_method="credit_card",
                card_number="4242424242424242",
                card_expiry_month=12,
                card_expiry_year=2030,
                card_cvv="123",
            ),
            asynchronous=False,
        )
        return current_domain.repository_for(Order).get(order_id)

    return _pay
