"""Request validation shared by every payment provider."""

import pytest
from protean.exceptions import InvalidOperationError, ObjectNotFoundError, ValidationError

from storefront.payment.gateway import GatewayRegistry
from storefront.payment.gateway.fake_adapter import FakeGateway
from storefront.payment.gateway.port import (
    CardDetails,
    PaymentMethod,
    PaymentProviderType,
    PaymentRequest,
)
from storefront.payment.gateway.stripe_adapter import StripeGateway

CARD = CardDetails(number="4242424242424242", expiry_month=12, expiry_year=2030, cvv="123")


def _request(**overrides):
    params = dict(
        order_id="order-1",
        order_number="ORD-20260301-AAAAAAAA",
        amount=3998,
        currency="USD",
        method=PaymentMethod.CREDIT_CARD,
        provider=PaymentProviderType.MOCK,
        card_details=CARD,
    )
    params.update(overrides)
    return PaymentRequest(**params)


class TestValidateRequest:
    def test_valid_card_request(self):
        FakeGateway().validate_request(_request())

    def test_unsupported_currency(self):
        with pytest.raises(ValidationError) as exc:
            FakeGateway().validate_request(_request(currency="JPY"))
        assert "currency" in exc.value.messages

    def test_unsupported_method(self):
        gateway = StripeGateway(secret_key="sk_test")
        with pytest.raises(ValidationError) as exc:
            gateway.validate_request(_request(method=PaymentMethod.WALLET, phone_number="+4512345678"))
        assert "payment_method" in exc.value.messages

    def test_non_positive_amount(self):
        with pytest.raises(ValidationError) as exc:
            FakeGateway().validate_request(_request(amount=0))
        assert "amount" in exc.value.messages

    def test_card_requires_details(self):
        with pytest.raises(ValidationError):
            FakeGateway().validate_request(_request(card_details=None))
        with pytest.raises(ValidationError):
            FakeGateway().validate_request(_request(card_details=CardDetails(number="4242424242424242")))

    def test_card_token_is_enough(self):
        FakeGateway().validate_request(_request(card_details=CardDetails(number=None, token="pm_card_visa")))

    def test_wallet_requires_valid_phone(self):
        gateway = FakeGateway()
        with pytest.raises(ValidationError):
            gateway.validate_request(_request(method=PaymentMethod.WALLET, card_details=None))
        with pytest.raises(ValidationError):
            gateway.validate_request(_request(method=PaymentMethod.WALLET, card_details=None, phone_number="abc"))
        gateway.validate_request(_request(method=PaymentMethod.WALLET, card_details=None, phone_number="+4512345678"))

    def test_force_approve_unsupported_by_default(self):
        with pytest.raises(InvalidOperationError):
            StripeGateway(secret_key="sk_test").force_approve_payment("pi_1", "+4512345678")


class TestGatewayRegistry:
    def test_get_enabled_provider(self):
        gateway = FakeGateway()
        assert GatewayRegistry([gateway]).get("MOCK") is gateway

    def test_disabled_provider(self):
        registry = GatewayRegistry([FakeGateway()], disabled=["stripe"])
        assert not registry.is_enabled("stripe")
        with pytest.raises(ValidationError):
            registry.get("stripe")

    def test_unknown_provider(self):
        registry = GatewayRegistry([FakeGateway()])
        with pytest.raises(ObjectNotFoundError):
            registry.get("paypal")
        with pytest.raises(ObjectNotFoundError):
            registry.get("mobilepay")

    def test_available_providers_by_currency(self):
        registry = GatewayRegistry([FakeGateway(currencies=("USD",)), StripeGateway(secret_key="sk_test")])

        assert [p.type for p in registry.available_providers("usd")] == [
            PaymentProviderType.MOCK,
            PaymentProviderType.STRIPE,
        ]
        assert [p.type for p in registry.available_providers("JPY")] == [PaymentProviderType.STRIPE]
