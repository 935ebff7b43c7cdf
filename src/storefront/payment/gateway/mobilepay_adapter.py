"""Vipps MobilePay payment gateway adapter.

Uses the ePayment REST API over ``httpx``. Every payment is a redirect flow:
creating it returns ``requires_action`` with the URL where the buyer approves
it in the app, and the outcome arrives later through the webhook.

Payments are identified by their reference, ``order-<order id>-<hex>``, which
is what the order stores as its external payment id. The sandbox exposes a
force-approve endpoint that completes a payment without a phone.
"""

import time
from uuid import uuid4

import httpx
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

MOBILEPAY_TEST_URL = "https://apitest.vipps.no"
MOBILEPAY_PRODUCTION_URL = "https://api.vipps.no"

MOBILEPAY_CURRENCIES = ("NOK", "DKK", "EUR")


def payment_reference(order_id: str) -> str:
    return f"order-{order_id}-{uuid4().hex}"


class MobilePayGateway(PaymentGateway):
    """Wallet payments through the Vipps MobilePay ePayment API."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        subscription_key: str,
        merchant_serial_number: str,
        return_url: str,
        test_mode: bool = True,
        timeout: float = 10.0,
        payment_description: str = "Storefront order",
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.subscription_key = subscription_key
        self.merchant_serial_number = merchant_serial_number
        self.return_url = return_url
        self.test_mode = test_mode
        self.payment_description = payment_description
        self._access_token: str | None = None
        self._token_expires_at = 0.0
        self._client = httpx.Client(
            base_url=MOBILEPAY_TEST_URL if test_mode else MOBILEPAY_PRODUCTION_URL,
            timeout=timeout,
            transport=transport,
        )

    @property
    def info(self) -> ProviderInfo:
        return ProviderInfo(
            type=PaymentProviderType.MOBILEPAY,
            name="MobilePay",
            description="Pay with the MobilePay app",
            methods=(PaymentMethod.WALLET,),
            currencies=MOBILEPAY_CURRENCIES,
            icon_url="/assets/images/mobilepay-logo.png",
        )

    # -------------------------------------------------------------------
    # HTTP plumbing
    # -------------------------------------------------------------------
    def _fail(self, message: str, exc: Exception | None = None):
        raise PaymentProviderError(PaymentProviderType.MOBILEPAY.value, message) from exc

    def _token(self) -> str:
        if self._access_token and time.monotonic() < self._token_expires_at:
            return self._access_token

        headers = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "Ocp-Apim-Subscription-Key": self.subscription_key,
            "Merchant-Serial-Number": self.merchant_serial_number,
        }
        try:
            response = self._client.post("/accesstoken/get", headers=headers)
        except httpx.HTTPError as exc:
            self._fail(f"Access token request failed: {exc}", exc)
        if response.status_code >= 400:
            self._fail(f"Access token request rejected with status {response.status_code}")

        body = response.json()
        self._access_token = body["access_token"]
        # Refresh a minute early
        self._token_expires_at = time.monotonic() + max(int(body.get("expires_in", 3600)) - 60, 0)
        return self._access_token

    def _headers(self, idempotency_key: str | None = None) -> dict:
        headers = {
            "Authorization": f"Bearer {self._token()}",
            "Ocp-Apim-Subscription-Key": self.subscription_key,
            "Merchant-Serial-Number": self.merchant_serial_number,
            "Idempotency-Key": idempotency_key or uuid4().hex,
        }
        return headers

    def _send(self, method: str, path: str, json: dict | None = None, idempotency_key: str | None = None) -> dict:
        try:
            response = self._client.request(method, path, json=json, headers=self._headers(idempotency_key))
        except httpx.HTTPError as exc:
            logger.error("MobilePay request failed", path=path, error=str(exc))
            self._fail(f"Request to {path} failed: {exc}", exc)

        if response.status_code >= 400:
            try:
                body = response.json()
                message = body.get("detail") or body.get("title") or response.text
            except ValueError:
                message = response.text
            logger.warning("MobilePay returned an error", path=path, status_code=response.status_code, error=message)
            self._fail(message)
        if not response.content:
            return {}
        return response.json()

    @staticmethod
    def _amount(amount: int, currency: str) -> dict:
        return {"currency": currency.upper(), "value": int(amount)}

    @staticmethod
    def _phone(phone_number: str) -> str:
        return phone_number.lstrip("+")

    # -------------------------------------------------------------------
    # Gateway operations
    # -------------------------------------------------------------------
    def process_payment(self, request: PaymentRequest) -> PaymentResult:
        self.validate_request(request)

        reference = payment_reference(request.order_id)
        body = {
            "amount": self._amount(request.amount, request.currency),
            "customer": {"phoneNumber": self._phone(request.phone_number)},
            "paymentMethod": {"type": "WALLET"},
            "reference": reference,
            "returnUrl": f"{self.return_url}?order={request.order_number}",
            "userFlow": "WEB_REDIRECT",
            "paymentDescription": self.payment_description,
        }
        created = self._send("POST", "/epayment/v1/payments", json=body, idempotency_key=request.idempotency_key)
        logger.info("MobilePay payment created", reference=reference, order_id=request.order_id)

        return PaymentResult(
            success=False,
            provider=PaymentProviderType.MOBILEPAY,
            transaction_id=created.get("reference", reference),
            message="Payment requires user action",
            requires_action=True,
            action_url=created.get("redirectUrl"),
        )

    def verify_payment(self, transaction_id: str) -> bool:
        payment = self._send("GET", f"/epayment/v1/payments/{transaction_id}")
        return payment.get("state") == "AUTHORIZED"

    def capture_payment(self, transaction_id: str, amount: int, currency: str) -> PaymentResult:
        result = self._send(
            "POST",
            f"/epayment/v1/payments/{transaction_id}/capture",
            json={"modificationAmount": self._amount(amount, currency)},
        )
        return PaymentResult(
            success=True,
            provider=PaymentProviderType.MOBILEPAY,
            transaction_id=result.get("pspReference") or transaction_id,
            message="Payment captured",
            captured=True,
        )

    def refund_payment(self, transaction_id: str, amount: int, currency: str) -> PaymentResult:
        result = self._send(
            "POST",
            f"/epayment/v1/payments/{transaction_id}/refund",
            json={"modificationAmount": self._amount(amount, currency)},
        )
        return PaymentResult(
            success=True,
            provider=PaymentProviderType.MOBILEPAY,
            transaction_id=result.get("pspReference") or transaction_id,
            message="Payment refunded",
        )

    def cancel_payment(self, transaction_id: str) -> PaymentResult:
        result = self._send(
            "POST",
            f"/epayment/v1/payments/{transaction_id}/cancel",
            json={"cancelTransactionOnly": False},
        )
        return PaymentResult(
            success=True,
            provider=PaymentProviderType.MOBILEPAY,
            transaction_id=result.get("pspReference") or transaction_id,
            message="Payment cancelled",
        )

    def force_approve_payment(self, transaction_id: str, phone_number: str) -> None:
        if not self.test_mode:
            super().force_approve_payment(transaction_id, phone_number)
        self._send(
            "POST",
            f"/epayment/v1/test/payments/{transaction_id}/approve",
            json={"customer": {"phoneNumber": self._phone(phone_number)}},
        )
        logger.info("MobilePay payment force-approved", reference=transaction_id)
