"""Configurable fake payment gateway for development and testing.

This adapter simulates a payment provider without any external calls. It can
be configured at runtime to succeed, decline, ask for buyer action or fail
outright with a provider error, and it records every call it receives so
tests can assert on what was sent.
"""

from uuid import uuid4

from storefront.payment.gateway.port import (
    PaymentGateway,
    PaymentMethod,
    PaymentProviderError,
    PaymentProviderType,
    PaymentRequest,
    PaymentResult,
    ProviderInfo,
)


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self, currencies=("USD", "EUR", "GBP", "NOK", "DKK"), capture_immediately: bool = False) -> None:
        self.currencies = tuple(code.upper() for code in currencies)
        self.should_succeed: bool = True
        self.failure_reason: str = "Card declined"
        self.requires_action: bool = False
        self.raise_error: bool = False
        self.capture_immediately = capture_immediately
        self.calls: list[dict] = []

    @property
    def info(self) -> ProviderInfo:
        return ProviderInfo(
            type=PaymentProviderType.MOCK,
            name="Test Payment",
            description="For testing purposes only",
            methods=(PaymentMethod.CREDIT_CARD, PaymentMethod.WALLET),
            currencies=self.currencies,
        )

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Card declined",
        requires_action: bool = False,
        raise_error: bool = False,
        capture_immediately: bool | None = None,
    ) -> None:
        """Configure gateway behaviour at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.requires_action = requires_action
        self.raise_error = raise_error
        if capture_immediately is not None:
            self.capture_immediately = capture_immediately

    def _record(self, method: str, **args) -> None:
        self.calls.append({"method": method, **args})
        if self.raise_error:
            raise PaymentProviderError(PaymentProviderType.MOCK.value, self.failure_reason)

    def _result(self, message: str, transaction_id: str | None = None, captured: bool = False) -> PaymentResult:
        if self.should_succeed:
            return PaymentResult(
                success=True,
                provider=PaymentProviderType.MOCK,
                transaction_id=transaction_id or f"fake_txn_{uuid4().hex[:12]}",
                message=message,
                captured=captured,
            )
        return PaymentResult(
            success=False,
            provider=PaymentProviderType.MOCK,
            transaction_id=transaction_id,
            message=self.failure_reason,
        )

    def process_payment(self, request: PaymentRequest) -> PaymentResult:
        self._record(
            "process_payment",
            order_id=request.order_id,
            amount=request.amount,
            currency=request.currency,
            payment_method=request.method.value,
            idempotency_key=request.idempotency_key,
        )

        if self.requires_action:
            reference = f"fake_txn_{uuid4().hex[:12]}"
            return PaymentResult(
                success=False,
                provider=PaymentProviderType.MOCK,
                transaction_id=reference,
                message="Payment requires user action",
                requires_action=True,
                action_url=f"https://payments.example.test/approve/{reference}",
            )
        return self._result("Payment successful", captured=self.capture_immediately)

    def verify_payment(self, transaction_id: str) -> bool:
        self._record("verify_payment", transaction_id=transaction_id)
        return self.should_succeed

    def capture_payment(self, transaction_id: str, amount: int, currency: str) -> PaymentResult:
        self._record("capture_payment", transaction_id=transaction_id, amount=amount, currency=currency)
        return self._result("Payment captured", transaction_id=transaction_id, captured=True)

    def refund_payment(self, transaction_id: str, amount: int, currency: str) -> PaymentResult:
        self._record("refund_payment", transaction_id=transaction_id, amount=amount, currency=currency)
        return self._result("Payment refunded", transaction_id=f"fake_ref_{uuid4().hex[:12]}")

    def cancel_payment(self, transaction_id: str) -> PaymentResult:
        self._record("cancel_payment", transaction_id=transaction_id)
        return self._result("Payment cancelled", transaction_id=transaction_id)

    def force_approve_payment(self, transaction_id: str, phone_number: str) -> None:
        self._record("force_approve_payment", transaction_id=transaction_id, phone_number=phone_number)
