"""Stripe webhooks: signature verification and event translation.

Stripe signs each delivery with the ``Stripe-Signature`` header; the SDK's
``WebhookSignature`` checks it against the endpoint's signing secret and
rejects deliveries older than the tolerance to stop replays.
"""

import json

import stripe
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

SIGNATURE_TOLERANCE_SECONDS = 300

_INTENT_EVENTS = {
    "payment_intent.amount_capturable_updated": PaymentEventType.AUTHORIZED,
    "payment_intent.payment_failed": PaymentEventType.FAILED,
    "payment_intent.canceled": PaymentEventType.CANCELLED,
}


def verify_signature(payload: bytes, header: str | None, secret: str) -> None:
    """Raise ``WebhookSignatureError`` unless ``header`` signs ``payload``."""
    try:
        stripe.WebhookSignature.verify_header(
            payload.decode("utf-8", errors="replace"), header, secret, SIGNATURE_TOLERANCE_SECONDS
        )
    except stripe.SignatureVerificationError as exc:
        raise WebhookSignatureError(exc.user_message or "Invalid Stripe signature") from exc


def translate_event(event: dict, raw_payload: str | None = None) -> RecordPaymentEvent | None:
    """Map a Stripe event onto a ledger command, or None for events we do not track.

    ``charge.refunded`` carries the charge's cumulative ``amount_refunded``.
    When the refunds list is expanded, the newest refund supplies the
    increment and its id; otherwise only the cumulative total is passed on
    and the ledger works out the increment.
    """
    event_name = event.get("type", "")
    obj = (event.get("data") or {}).get("object") or {}
    metadata = obj.get("metadata") or {}
    transaction_id = obj.get("id")
    refunded_total = None

    if event_name == "payment_intent.succeeded":
        event_type = PaymentEventType.AUTHORIZED if obj.get("capture_method") == "manual" else PaymentEventType.CAPTURED
        payment_id, amount = obj.get("id"), obj.get("amount_received") or obj.get("amount")
    elif event_name in _INTENT_EVENTS:
        event_type = _INTENT_EVENTS[event_name]
        payment_id = obj.get("id")
        amount = obj.get("amount_capturable") if event_type == PaymentEventType.AUTHORIZED else obj.get("amount")
    elif event_name == "charge.captured":
        event_type = PaymentEventType.CAPTURED
        payment_id = obj.get("payment_intent")
        amount = obj.get("amount_captured") or obj.get("amount")
    elif event_name == "charge.refunded":
        event_type = PaymentEventType.REFUNDED
        payment_id = obj.get("payment_intent")
        refunds = (obj.get("refunds") or {}).get("data") or []
        latest = refunds[0] if refunds else {}
        transaction_id, amount = latest.get("id"), latest.get("amount")
        refunded_total = obj.get("amount_refunded")
    else:
        return None

    return RecordPaymentEvent(
        provider="stripe",
        event_type=event_type.value,
        order_id=metadata.get("order_id") or None,
        payment_id=payment_id,
        transaction_id=transaction_id,
        idempotency_key=event.get("id"),
        amount=amount or 0,
        refunded_total=refunded_total,
        currency=(obj.get("currency") or "").upper() or None,
        raw_payload=raw_payload,
    )


def handle_webhook(payload: bytes, signature_header: str | None) -> LedgerOutcome:
    """Verify, translate and record one Stripe delivery."""
    secret = setting_str("STRIPE_WEBHOOK_SECRET")
    if secret:
        verify_signature(payload, signature_header, secret)
    else:
        logger.warning("Stripe webhook secret not configured, skipping signature verification")

    try:
        event = json.loads(payload)
    except ValueError:
        raise ValidationError({"payload": ["Webhook body is not valid JSON"]}) from None
    command = translate_event(event, raw_payload=payload.decode("utf-8", errors="replace"))
    if command is None:
        logger.info("Unhandled Stripe event acknowledged", event_type=event.get("type"), event_id=event.get("id"))
        return LedgerOutcome.IGNORED
    return record_payment_event(command)
