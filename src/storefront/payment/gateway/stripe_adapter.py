"""Stripe payment gateway adapter.

Talks to Stripe (PaymentIntents, PaymentMethods, Refunds) through the
official ``stripe`` SDK. Each gateway owns a ``StripeClient`` whose HTTP
client carries the configured timeout; SDK errors surface as
``PaymentProviderError``.

With ``capture_method="automatic"`` a confirmed intent is captured
immediately; with ``"manual"`` it stops at ``requires_capture`` and the
payment stays authorized until an explicit capture.
"""

import stripe
import structlog

from storefront.payment.gateway.port import (
    PaymentGateway,
    PaymentMethod,
    PaymentProviderError,
    PaymentProviderType,
    PaymentRequest,
    PaymentResult,
    ProviderInfo,
)

logger = structlog.get_logger(__name__)

STRIPE_CURRENCIES = (
    "USD", "EUR", "GBP", "JPY", "CAD", "AUD", "CHF", "SEK", "NOK", "DKK",
    "PLN", "CZK", "HUF", "BGN", "RON", "ISK", "MXN", "BRL", "SGD", "HKD",
    "INR", "MYR", "PHP", "THB", "TWD", "KRW", "NZD", "ILS", "ZAR",
)  # fmt: skip


class StripeGateway(PaymentGateway):
    """Card payments through Stripe PaymentIntents."""

    def __init__(
        self,
        secret_key: str,
        capture_method: str = "automatic",
        timeout: float = 10.0,
        return_url: str | None = None,
        client: stripe.StripeClient | None = None,
    ) -> None:
        if capture_method not in ("automatic", "manual"):
            raise ValueError(f"Unsupported Stripe capture method: {capture_method}")
        self.capture_method = capture_method
        self.return_url = return_url
        self._client = client or stripe.StripeClient(
            secret_key,
            http_client=stripe.HTTPXClient(timeout=timeout, allow_sync_methods=True),
            max_network_retries=0,
        )

    @property
    def info(self) -> ProviderInfo:
        return ProviderInfo(
            type=PaymentProviderType.STRIPE,
            name="Stripe",
            description="Pay with credit or debit card",
            methods=(PaymentMethod.CREDIT_CARD,),
            currencies=STRIPE_CURRENCIES,
            icon_url="/assets/images/stripe-logo.png",
        )

    # -------------------------------------------------------------------
    # SDK plumbing
    # -------------------------------------------------------------------
    def _call(self, operation: str, method, *args, **kwargs):
        try:
            return method(*args, **kwargs)
        except stripe.StripeError as exc:
            message = exc.user_message or str(exc)
            logger.warning(
                "Stripe request failed",
                operation=operation,
                status_code=exc.http_status,
                code=exc.code,
                error=message,
            )
            raise PaymentProviderError(PaymentProviderType.STRIPE.value, message) from exc

    def _payment_method_id(self, request: PaymentRequest) -> str:
        card = request.card_details
        if card.token:
            return card.token

        details = {"number": card.number, "cvc": card.cvv}
        if card.expiry_month:
            details["exp_month"] = card.expiry_month
        if card.expiry_year:
            details["exp_year"] = card.expiry_year
        params = {"type": "card", "card": details}
        if card.holder_name:
            params["billing_details"] = {"name": card.holder_name}
        return self._call("create_payment_method", self._client.v1.payment_methods.create, params).id

    # -------------------------------------------------------------------
    # Gateway operations
    # -------------------------------------------------------------------
    def process_payment(self, request: PaymentRequest) -> PaymentResult:
        self.validate_request(request)

        params = {
            "amount": request.amount,
            "currency": request.currency.lower(),
            "payment_method": self._payment_method_id(request),
            "confirm": True,
            "capture_method": self.capture_method,
            "metadata": {"order_id": request.order_id, "order_number": request.order_number},
        }
        if request.customer_email:
            params["receipt_email"] = request.customer_email
        if self.return_url:
            params["return_url"] = f"{self.return_url}?order={request.order_number}"

        options = {"idempotency_key": request.idempotency_key} if request.idempotency_key else None
        intent = self._call("create_payment_intent", self._client.v1.payment_intents.create, params, options)
        status = intent.status
        logger.info("Stripe payment intent created", intent_id=intent.id, status=status)

        if status == "succeeded":
            return PaymentResult(
                success=True,
                provider=PaymentProviderType.STRIPE,
                transaction_id=intent.id,
                message="Payment captured",
                captured=True,
            )
        if status == "requires_capture":
            return PaymentResult(
                success=True,
                provider=PaymentProviderType.STRIPE,
                transaction_id=intent.id,
                message="Payment authorized",
            )
        if status == "requires_action":
            next_action = getattr(intent, "next_action", None)
            redirect = getattr(next_action, "redirect_to_url", None) if next_action else None
            return PaymentResult(
                success=False,
                provider=PaymentProviderType.STRIPE,
                transaction_id=intent.id,
                message="Payment requires additional action",
                requires_action=True,
                action_url=getattr(redirect, "url", None) if redirect else None,
            )

        error = getattr(intent, "last_payment_error", None)
        return PaymentResult(
            success=False,
            provider=PaymentProviderType.STRIPE,
            transaction_id=intent.id,
            message=(getattr(error, "message", None) if error else None) or f"Payment status: {status}",
        )

    def verify_payment(self, transaction_id: str) -> bool:
        intent = self._call("retrieve_payment_intent", self._client.v1.payment_intents.retrieve, transaction_id)
        return intent.status in ("succeeded", "requires_capture")

    def capture_payment(self, transaction_id: str, amount: int, currency: str) -> PaymentResult:
        intent = self._call(
            "capture_payment_intent",
            self._client.v1.payment_intents.capture,
            transaction_id,
            {"amount_to_capture": amount},
        )
        success = intent.status == "succeeded"
        return PaymentResult(
            success=success,
            provider=PaymentProviderType.STRIPE,
            transaction_id=intent.id or transaction_id,
            message=f"Capture status: {intent.status}",
            captured=success,
        )

    def refund_payment(self, transaction_id: str, amount: int, currency: str) -> PaymentResult:
        refund = self._call(
            "create_refund",
            self._client.v1.refunds.create,
            {"payment_intent": transaction_id, "amount": amount},
        )
        if refund.status != "succeeded":
            logger.warning("Stripe refund not yet succeeded", refund_id=refund.id, status=refund.status)
        return PaymentResult(
            success=refund.status in ("succeeded", "pending"),
            provider=PaymentProviderType.STRIPE,
            transaction_id=refund.id,
            message=f"Refund status: {refund.status}",
        )

    def cancel_payment(self, transaction_id: str) -> PaymentResult:
        intent = self._call("cancel_payment_intent", self._client.v1.payment_intents.cancel, transaction_id)
        return PaymentResult(
            success=intent.status == "canceled",
            provider=PaymentProviderType.STRIPE,
            transaction_id=intent.id or transaction_id,
            message=f"Cancel status: {intent.status}",
        )
