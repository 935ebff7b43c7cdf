"""Webhook transaction ledger — commands and handler.

Provider webhooks are translated (see ``storefront.payment.providers``) into
a provider-neutral ``RecordPaymentEvent``. The ledger makes delivery safe to
repeat and to reorder:

1. resolve the order by id, else by external payment id; unknown orders are
   acknowledged and ignored so the provider stops retrying;
2. an idempotency key already recorded for the order is a duplicate, and so
   is a refund whose provider id or cumulative total is already on record;
3. an event whose payment status is already reached, or can no longer be
   reached, is superseded; a refund beyond the captured total is rejected;
4. the order's payment status advances;
5. in a separate unit of work, the latest pending transaction of the same
   type is settled, or a new transaction is inserted when the event arrives
   before its request.

A failure writing the transaction row is logged and never rolls back the
status already advanced. A row that loses the race on the idempotency index
turns the delivery into a duplicate.
"""

from dataclasses import dataclass
from enum import Enum

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError, TransactionError, ValidationError
from protean.fields import Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.order.order import REFUNDABLE_PAYMENT_STATES, Order, PaymentStatus
from storefront.payment.transaction import (
    IDEMPOTENCY_CONFLICT_KEY,
    PaymentTransaction,
    TransactionStatus,
    TransactionType,
)

logger = structlog.get_logger(__name__)


class LedgerOutcome(Enum):
    RECORDED = "recorded"
    DUPLICATE = "duplicate"
    SUPERSEDED = "superseded"
    IGNORED = "ignored"
    REJECTED = "rejected"


class PaymentEventType(Enum):
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    CANCELLED = "cancelled"
    FAILED = "failed"
    EXPIRED = "expired"
    REFUNDED = "refunded"


# Event type -> (transaction type, transaction status, target payment status)
_EVENT_EFFECTS = {
    PaymentEventType.AUTHORIZED: (TransactionType.AUTHORIZE, TransactionStatus.SUCCESSFUL, PaymentStatus.AUTHORIZED),
    PaymentEventType.CAPTURED: (TransactionType.CAPTURE, TransactionStatus.SUCCESSFUL, PaymentStatus.CAPTURED),
    PaymentEventType.CANCELLED: (TransactionType.CANCEL, TransactionStatus.SUCCESSFUL, PaymentStatus.CANCELLED),
    PaymentEventType.FAILED: (TransactionType.AUTHORIZE, TransactionStatus.FAILED, PaymentStatus.FAILED),
    PaymentEventType.EXPIRED: (TransactionType.AUTHORIZE, TransactionStatus.FAILED, PaymentStatus.FAILED),
    PaymentEventType.REFUNDED: (TransactionType.REFUND, TransactionStatus.SUCCESSFUL, PaymentStatus.REFUNDED),
}


@storefront.command(part_of="PaymentTransaction")
class RecordPaymentEvent:
    """A provider-neutral payment event delivered by a webhook.

    ``refunded_total`` is the provider's cumulative refunded amount for the
    payment, when the provider reports one.
    """

    provider = String(required=True, max_length=50)
    event_type = String(required=True, choices=PaymentEventType)
    order_id = Identifier()
    payment_id = String(max_length=255)
    transaction_id = String(max_length=255)
    idempotency_key = String(max_length=255)
    amount = Integer(default=0, min_value=0)
    refunded_total = Integer(min_value=0)
    currency = String(max_length=3)
    raw_payload = Text()


@storefront.command(part_of="PaymentTransaction")
class RecordLedgerTransaction:
    """Settle the pending transaction an event answers, or insert a new one."""

    order_id = Identifier(required=True)
    provider = String(required=True, max_length=50)
    event_type = String(required=True, choices=PaymentEventType)
    type = String(required=True, choices=TransactionType)
    status = String(required=True, choices=TransactionStatus)
    transaction_id = String(max_length=255)
    idempotency_key = String(max_length=255)
    amount = Integer(default=0, min_value=0)
    currency = String(max_length=3)
    raw_payload = Text()


@dataclass(frozen=True)
class LedgerDecision:
    outcome: LedgerOutcome
    transaction: RecordLedgerTransaction | None = None


def _resolve_order(command) -> Order | None:
    repo = current_domain.repository_for(Order)
    if command.order_id:
        try:
            return repo.get(command.order_id)
        except ObjectNotFoundError:
            pass
    if command.payment_id:
        return repo.find_by_payment_id(command.payment_id)
    return None


@storefront.command_handler(part_of=PaymentTransaction)
class PaymentLedgerHandler:
    @handle(RecordPaymentEvent)
    def record_payment_event(self, command) -> LedgerDecision:
        event_type = PaymentEventType(command.event_type)
        log = logger.bind(
            provider=command.provider,
            event_type=event_type.value,
            payment_id=command.payment_id,
            idempotency_key=command.idempotency_key,
        )

        # 1. Resolve the order
        order = _resolve_order(command)
        if order is None:
            log.warning("Payment event for unknown order ignored", order_id=command.order_id)
            return LedgerDecision(LedgerOutcome.IGNORED)

        transactions = current_domain.repository_for(PaymentTransaction)

        # 2. Duplicate delivery
        if transactions.find_by_idempotency_key(order.id, command.idempotency_key) is not None:
            log.info("Duplicate payment event", order_id=str(order.id))
            return LedgerDecision(LedgerOutcome.DUPLICATE)

        transaction_type, transaction_status, target = _EVENT_EFFECTS[event_type]
        current = PaymentStatus(order.payment_status)

        amount = command.amount or (order.final_amount if transaction_type != TransactionType.CANCEL else 0)

        # 3. Stale or out-of-order events
        if target == PaymentStatus.REFUNDED:
            if current not in REFUNDABLE_PAYMENT_STATES:
                log.info("Refund event before capture superseded", order_id=str(order.id), payment_status=current.value)
                return LedgerDecision(LedgerOutcome.SUPERSEDED)
            if transactions.find_successful(order.id, TransactionType.REFUND, command.transaction_id) is not None:
                log.info("Refund already recorded", order_id=str(order.id), transaction_id=command.transaction_id)
                return LedgerDecision(LedgerOutcome.DUPLICATE)

            captured = transactions.sum_successful(order.id, TransactionType.CAPTURE) or order.final_amount
            refunded = transactions.sum_successful(order.id, TransactionType.REFUND)
            if command.refunded_total is not None:
                amount = command.refunded_total - refunded
                if amount <= 0:
                    log.info(
                        "Refund total already recorded",
                        order_id=str(order.id),
                        refunded=refunded,
                        refunded_total=command.refunded_total,
                    )
                    return LedgerDecision(LedgerOutcome.DUPLICATE)
            else:
                amount = command.amount or captured - refunded
            if amount <= 0 or refunded + amount > captured:
                log.warning(
                    "Refund exceeds captured amount",
                    order_id=str(order.id),
                    captured=captured,
                    refunded=refunded,
                    amount=amount,
                )
                return LedgerDecision(LedgerOutcome.REJECTED)
        elif target == current or not order.can_advance_payment_to(target):
            log.info(
                "Payment event superseded",
                order_id=str(order.id),
                payment_status=current.value,
                target=target.value,
            )
            return LedgerDecision(LedgerOutcome.SUPERSEDED)

        # 4. Advance the payment status
        order.update_payment_status(target, payment_id=None if order.payment_id else command.payment_id)
        current_domain.repository_for(Order).add(order)
        log.info(
            "Payment event recorded",
            order_id=str(order.id),
            payment_status=order.payment_status,
            order_status=order.status,
        )
        return LedgerDecision(
            LedgerOutcome.RECORDED,
            RecordLedgerTransaction(
                order_id=str(order.id),
                provider=command.provider,
                event_type=event_type.value,
                type=transaction_type.value,
                status=transaction_status.value,
                transaction_id=command.transaction_id,
                idempotency_key=command.idempotency_key,
                amount=amount,
                currency=command.currency or order.currency,
                raw_payload=command.raw_payload,
            ),
        )

    @handle(RecordLedgerTransaction)
    def record_ledger_transaction(self, command):
        transactions = current_domain.repository_for(PaymentTransaction)
        transaction_type = TransactionType(command.type)
        status = TransactionStatus(command.status)

        # 5. Settle the pending transaction, or insert one
        transaction = transactions.latest_pending(command.order_id, transaction_type)
        if transaction is not None:
            transaction.resolve(
                status,
                transaction_id=command.transaction_id,
                idempotency_key=command.idempotency_key,
                amount=command.amount,
                raw_response=command.raw_payload,
            )
        else:
            transaction = PaymentTransaction.record(
                order_id=command.order_id,
                type=transaction_type,
                status=status,
                amount=command.amount,
                currency=command.currency,
                provider=command.provider,
                transaction_id=command.transaction_id,
                idempotency_key=command.idempotency_key,
                raw_response=command.raw_payload,
                metadata={"event_type": command.event_type},
            )
        transactions.add(transaction)


class WebhookSignatureError(Exception):
    """A webhook's signature is missing, malformed or does not match."""


def is_idempotency_conflict(exc: ValidationError | TransactionError) -> bool:
    """True when ``exc`` is a unique-index conflict on the idempotency key."""
    if isinstance(exc, ValidationError):
        return isinstance(exc.messages, dict) and IDEMPOTENCY_CONFLICT_KEY in exc.messages
    return (exc.extra_info or {}).get("original_exception") == "IntegrityError"


def record_payment_event(command: RecordPaymentEvent) -> LedgerOutcome:
    decision = current_domain.process(command, asynchronous=False)
    if decision.transaction is None:
        return decision.outcome

    row = decision.transaction
    try:
        current_domain.process(row, asynchronous=False)
    except (ValidationError, TransactionError) as exc:
        if is_idempotency_conflict(exc):
            logger.info("Duplicate payment event", order_id=row.order_id, idempotency_key=row.idempotency_key)
            return LedgerOutcome.DUPLICATE
        logger.error(
            "Failed to record payment transaction",
            order_id=row.order_id,
            event_type=row.event_type,
            error=str(exc),
        )
    return decision.outcome
