"""Payment gateway registry.

Provides get_gateways() / set_gateways() to swap implementations:
- built from configuration on first use (Stripe and MobilePay when enabled)
- FakeGateway under the ``mock`` provider, always enabled
- tests install their own registry with set_gateways()
"""

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError

from storefront.config import setting_bool, setting_float, setting_str
from storefront.payment.gateway.fake_adapter import FakeGateway
from storefront.payment.gateway.mobilepay_adapter import MobilePayGateway
from storefront.payment.gateway.port import PaymentGateway, PaymentProviderType, ProviderInfo
from storefront.payment.gateway.stripe_adapter import StripeGateway

logger = structlog.get_logger(__name__)


class GatewayRegistry:
    """The payment providers known to this deployment, keyed by provider type."""

    def __init__(self, gateways: list[PaymentGateway] | None = None, disabled: list[str] | None = None) -> None:
        self._gateways: dict[PaymentProviderType, PaymentGateway] = {}
        self._disabled = {PaymentProviderType(name) for name in (disabled or [])}
        for gateway in gateways or []:
            self.register(gateway)

    def register(self, gateway: PaymentGateway) -> None:
        self._gateways[gateway.provider] = gateway

    def _provider_type(self, provider) -> PaymentProviderType:
        if isinstance(provider, PaymentProviderType):
            return provider
        try:
            return PaymentProviderType((provider or "").lower())
        except ValueError:
            raise ObjectNotFoundError(f"Payment provider {provider} does not exist") from None

    def is_enabled(self, provider) -> bool:
        provider_type = self._provider_type(provider)
        return provider_type in self._gateways and provider_type not in self._disabled

    def get(self, provider) -> PaymentGateway:
        """Return the gateway for ``provider`` or reject it."""
        provider_type = self._provider_type(provider)
        if provider_type not in self._gateways and provider_type not in self._disabled:
            raise ObjectNotFoundError(f"Payment provider {provider_type.value} does not exist")
        if provider_type in self._disabled:
            raise ValidationError({"provider": [f"Payment provider {provider_type.value} is not enabled"]})
        return self._gateways[provider_type]

    def available_providers(self, currency: str | None = None) -> list[ProviderInfo]:
        return [
            gateway.info
            for provider_type, gateway in self._gateways.items()
            if provider_type not in self._disabled and (currency is None or gateway.info.supports_currency(currency))
        ]


def build_gateways() -> GatewayRegistry:
    """Build the registry from the ``STRIPE_*`` and ``MOBILEPAY_*`` settings."""
    timeout = setting_float("PAYMENT_TIMEOUT_SECONDS", 10.0)
    gateways: list[PaymentGateway] = [FakeGateway()]
    disabled = []

    if setting_bool("STRIPE_ENABLED") and setting_str("STRIPE_SECRET_KEY"):
        gateways.append(
            StripeGateway(
                secret_key=setting_str("STRIPE_SECRET_KEY"),
                capture_method=setting_str("STRIPE_CAPTURE_METHOD", "automatic") or "automatic",
                timeout=timeout,
            )
        )
    else:
        disabled.append(PaymentProviderType.STRIPE.value)

    if setting_bool("MOBILEPAY_ENABLED") and setting_str("MOBILEPAY_CLIENT_ID"):
        gateways.append(
            MobilePayGateway(
                client_id=setting_str("MOBILEPAY_CLIENT_ID"),
                client_secret=setting_str("MOBILEPAY_CLIENT_SECRET"),
                subscription_key=setting_str("MOBILEPAY_SUBSCRIPTION_KEY"),
                merchant_serial_number=setting_str("MOBILEPAY_MERCHANT_SERIAL_NUMBER"),
                return_url=setting_str("MOBILEPAY_RETURN_URL"),
                test_mode=setting_bool("MOBILEPAY_TEST_MODE", True),
                timeout=timeout,
            )
        )
    else:
        disabled.append(PaymentProviderType.MOBILEPAY.value)

    registry = GatewayRegistry(gateways, disabled=disabled)
    logger.info(
        "Payment gateways configured",
        enabled=[info.type.value for info in registry.available_providers()],
        disabled=disabled,
    )
    return registry


_current_registry: GatewayRegistry | None = None


def get_gateways() -> GatewayRegistry:
    """Return the active gateway registry, building it from settings on first use."""
    global _current_registry
    if _current_registry is None:
        _current_registry = build_gateways()
    return _current_registry


def set_gateways(registry: GatewayRegistry) -> None:
    """Override the active gateway registry (useful for tests)."""
    global _current_registry
    _current_registry = registry


def reset_gateways() -> None:
    """Reset to the configured registry."""
    global _current_registry
    _current_registry = None


def get_gateway(provider) -> PaymentGateway:
    return get_gateways().get(provider)


def available_providers(currency: str | None = None) -> list[ProviderInfo]:
    return get_gateways().available_providers(currency)
