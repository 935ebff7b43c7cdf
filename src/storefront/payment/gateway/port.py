"""Payment gateway port (abstract interface).

Defines the contract that every payment provider adapter implements, so that
payment submission, the privileged payment operations and the webhook ledger
never depend on a concrete processor. Adapters:

- StripeGateway: immediate-capture card processor
- MobilePayGateway: redirect/wallet processor with a sandbox force-approve
- FakeGateway: configurable test double
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from protean.exceptions import InvalidOperationError, ValidationError

_PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{1,14}$")


class PaymentProviderType(Enum):
    STRIPE = "stripe"
    MOBILEPAY = "mobilepay"
    MOCK = "mock"


class PaymentMethod(Enum):
    CREDIT_CARD = "credit_card"
    WALLET = "wallet"


class PaymentProviderError(Exception):
    """A provider call failed (network error, unexpected response, decline by API).

    ``reason`` carries the provider's detailed message. It is logged, never
    shown to buyers.
    """

    def __init__(self, provider: str, reason: str):
        self.provider = provider
        self.reason = reason
        super().__init__(f"{provider}: {reason}")


@dataclass(frozen=True)
class CardDetails:
    number: str
    expiry_month: int | None = None
    expiry_year: int | None = None
    cvv: str | None = None
    holder_name: str | None = None
    token: str | None = None


@dataclass(frozen=True)
class PaymentRequest:
    order_id: str
    order_number: str
    amount: int
    currency: str
    method: PaymentMethod
    provider: PaymentProviderType
    card_details: CardDetails | None = None
    phone_number: str | None = None
    customer_email: str | None = None
    idempotency_key: str | None = None


@dataclass(frozen=True)
class PaymentResult:
    """Outcome of a provider call.

    ``success`` with ``captured`` means the funds were taken immediately;
    ``success`` alone means the payment is authorized. ``requires_action``
    means the buyer must complete the payment at ``action_url``.
    """

    success: bool
    provider: PaymentProviderType
    transaction_id: str | None = None
    message: str = ""
    requires_action: bool = False
    action_url: str | None = None
    captured: bool = False


@dataclass(frozen=True)
class ProviderInfo:
    type: PaymentProviderType
    name: str
    description: str
    methods: tuple[PaymentMethod, ...]
    currencies: tuple[str, ...]
    enabled: bool = True
    icon_url: str | None = None

    def supports_currency(self, currency: str) -> bool:
        return (currency or "").upper() in self.currencies

    def supports_method(self, method: PaymentMethod) -> bool:
        return method in self.methods

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "name": self.name,
            "description": self.description,
            "methods": [method.value for method in self.methods],
            "currencies": list(self.currencies),
            "enabled": self.enabled,
            "icon_url": self.icon_url,
        }


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @property
    @abstractmethod
    def info(self) -> ProviderInfo:
        """Static description of the provider: methods, currencies, status."""
        ...

    @property
    def provider(self) -> PaymentProviderType:
        return self.info.type

    def validate_request(self, request: PaymentRequest) -> None:
        """Reject a request the provider can never accept, before any network call."""
        info = self.info
        if not info.supports_currency(request.currency):
            raise ValidationError({"currency": [f"Currency {request.currency} is not supported by {info.name}"]})
        if not info.supports_method(request.method):
            raise ValidationError(
                {"payment_method": [f"Payment method {request.method.value} is not supported by {info.name}"]}
            )
        if request.amount is None or request.amount <= 0:
            raise ValidationError({"amount": ["Payment amount must be greater than zero"]})

        if request.method == PaymentMethod.CREDIT_CARD:
            card = request.card_details
            if card is None:
                raise ValidationError({"card_details": ["Card details are required for credit card payments"]})
            if not card.token and (not card.number or not card.cvv):
                raise ValidationError({"card_details": ["Card number and CVV are required"]})
        elif request.method == PaymentMethod.WALLET:
            if not request.phone_number:
                raise ValidationError({"phone_number": ["Phone number is required for wallet payments"]})
            if not _PHONE_PATTERN.match(request.phone_number):
                raise ValidationError({"phone_number": [f"Invalid phone number format: {request.phone_number}"]})

    @abstractmethod
    def process_payment(self, request: PaymentRequest) -> PaymentResult:
        """Authorize (and possibly capture) a payment."""
        ...

    @abstractmethod
    def verify_payment(self, transaction_id: str) -> bool:
        """Return True when the provider reports the payment authorized or captured."""
        ...

    @abstractmethod
    def capture_payment(self, transaction_id: str, amount: int, currency: str) -> PaymentResult: ...

    @abstractmethod
    def refund_payment(self, transaction_id: str, amount: int, currency: str) -> PaymentResult: ...

    @abstractmethod
    def cancel_payment(self, transaction_id: str) -> PaymentResult: ...

    def force_approve_payment(self, transaction_id: str, phone_number: str) -> None:
        """Approve a sandbox payment without the buyer. Only wallet sandboxes support it."""
        raise InvalidOperationError(f"{self.info.name} does not support force approval")

