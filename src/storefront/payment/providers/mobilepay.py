"""MobilePay webhooks: signature verification and event translation.

Vipps MobilePay signs deliveries with HMAC-SHA256 over

    POST\\n<path and query>\\n<x-ms-date>;<host>;<x-ms-content-sha256>

carried in the ``Authorization`` header as
``HMAC-SHA256 SignedHeaders=x-ms-date;host;x-ms-content-sha256&Signature=<base64>``.
``x-ms-content-sha256`` is the base64 SHA-256 of the raw body and must match
the body actually received.
"""

import base64
import hashlib
import hmac
import json

import structlog
from protean.exceptions import ValidationError

from storefront.config import setting_str
from storefront.payment.webhook import (
    LedgerOutcome,
    PaymentEventType,
    RecordPaymentEvent,
    WebhookSignatureError,
    record_payment_event,
)

logger = structlog.get_logger(__name__)

_EVENTS = {
    "AUTHORIZED": PaymentEventType.AUTHORIZED,
    "CAPTURED": PaymentEventType.CAPTURED,
    "CANCELLED": PaymentEventType.CANCELLED,
    "EXPIRED": PaymentEventType.EXPIRED,
    "REFUNDED": PaymentEventType.REFUNDED,
    "ABORTED": PaymentEventType.FAILED,  # buyer left before approving
    "TERMINATED": PaymentEventType.CANCELLED,
}


def content_hash(payload: bytes) -> str:
    return base64.b64encode(hashlib.sha256(payload).digest()).decode()


def sign_request(path: str, date: str, host: str, payload_hash: str, secret: str) -> str:
    signed = f"POST\n{path}\n{date};{host};{payload_hash}"
    digest = hmac.new(secret.encode(), signed.encode(), hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def authorization_header(path: str, date: str, host: str, payload: bytes, secret: str) -> str:
    signature = sign_request(path, date, host, content_hash(payload), secret)
    return f"HMAC-SHA256 SignedHeaders=x-ms-date;host;x-ms-content-sha256&Signature={signature}"


def verify_signature(payload: bytes, path: str, headers, secret: str) -> None:
    """Raise ``WebhookSignatureError`` unless the headers sign ``payload``."""
    authorization = headers.get("authorization")
    date = headers.get("x-ms-date")
    host = headers.get("host")
    payload_hash = headers.get("x-ms-content-sha256")
    if not (authorization and date and host and payload_hash):
        raise WebhookSignatureError("Missing MobilePay signature headers")

    if not hmac.compare_digest(payload_hash, content_hash(payload)):
        raise WebhookSignatureError("MobilePay content hash does not match the body")

    _, _, signature = authorization.partition("Signature=")
    if not signature:
        raise WebhookSignatureError("Malformed MobilePay Authorization header")

    expected = sign_request(path, date, host, payload_hash, secret)
    if not hmac.compare_digest(expected, signature.strip()):
        raise WebhookSignatureError("MobilePay signature does not match")


def translate_event(event: dict, raw_payload: str | None = None) -> RecordPaymentEvent | None:
    name = (event.get("name") or "").upper()
    event_type = _EVENTS.get(name)
    if event_type is None:
        return None
    if event.get("success") is False:
        if event_type != PaymentEventType.AUTHORIZED:
            return None
        event_type = PaymentEventType.FAILED

    amount = event.get("amount") or {}
    return RecordPaymentEvent(
        provider="mobilepay",
        event_type=event_type.value,
        payment_id=event.get("reference"),
        transaction_id=event.get("pspReference"),
        idempotency_key=event.get("idempotencyKey") or event.get("pspReference"),
        amount=amount.get("value") or 0,
        currency=amount.get("currency"),
        raw_payload=raw_payload,
    )


def handle_webhook(payload: bytes, path: str, headers) -> LedgerOutcome:
    """Verify, translate and record one MobilePay delivery."""
    secret = setting_str("MOBILEPAY_WEBHOOK_SECRET")
    if secret:
        verify_signature(payload, path, headers, secret)
    else:
        logger.warning("MobilePay webhook secret not configured, skipping signature verification")

    try:
        event = json.loads(payload)
    except ValueError:
        raise ValidationError({"payload": ["Webhook body is not valid JSON"]}) from None
    command = translate_event(event, raw_payload=payload.decode("utf-8", errors="replace"))
    if command is None:
        logger.info("Unhandled MobilePay event acknowledged", name=event.get("name"), reference=event.get("reference"))
        return LedgerOutcome.IGNORED
    return record_payment_event(command)
