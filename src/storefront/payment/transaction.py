"""PaymentTransaction aggregate, one row per provider interaction.

Every authorize, capture, refund and cancel attempt against a provider is
recorded, whether it was started by payment submission, by a privileged
operation or by a webhook. Rows carrying an idempotency key are unique per
order, enforced by a unique index; rows without one never collide.
"""

import json
from enum import Enum

from protean import Index
from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String, Text

from storefront import clock
from storefront.domain import storefront


class TransactionType(Enum):
    AUTHORIZE = "authorize"
    CAPTURE = "capture"
    REFUND = "refund"
    CANCEL = "cancel"


class TransactionStatus(Enum):
    PENDING = "pending"
    SUCCESSFUL = "successful"
    FAILED = "failed"


IDEMPOTENCY_INDEX = Index("order_id", "idempotency_key", unique=True, name="uq_payment_transaction_idempotency")

# Key of the error a unique-index conflict raises in the memory provider
IDEMPOTENCY_CONFLICT_KEY = "_".join(IDEMPOTENCY_INDEX.fields)


@storefront.aggregate(indexes=[IDEMPOTENCY_INDEX])
class PaymentTransaction:
    order_id = Identifier(required=True)
    transaction_id = String(max_length=255)
    idempotency_key = String(max_length=255)
    type = String(required=True, choices=TransactionType)
    status = String(required=True, choices=TransactionStatus, default=TransactionStatus.PENDING.value)
    amount = Integer(default=0, min_value=0)
    currency = String(max_length=3)
    provider = String(max_length=50)
    raw_response = Text()
    metadata = Text()  # JSON object
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def record(
        cls,
        order_id,
        type: TransactionType,
        status: TransactionStatus,
        amount=0,
        currency=None,
        provider=None,
        transaction_id=None,
        idempotency_key=None,
        raw_response=None,
        metadata=None,
    ):
        now = clock.now()
        return cls(
            order_id=order_id,
            transaction_id=transaction_id,
            idempotency_key=idempotency_key,
            type=type.value,
            status=status.value,
            amount=amount or 0,
            currency=currency,
            provider=provider,
            raw_response=raw_response,
            metadata=json.dumps(metadata) if metadata else None,
            created_at=now,
            updated_at=now,
        )

    def resolve(self, status: TransactionStatus, transaction_id=None, idempotency_key=None, amount=None, raw_response=None):
        """Settle a pending transaction with the provider's outcome."""
        if TransactionStatus(self.status) != TransactionStatus.PENDING:
            raise ValidationError({"status": [f"Transaction is already {self.status}"]})
        self.status = status.value
        if transaction_id:
            self.transaction_id = transaction_id
        if idempotency_key:
            self.idempotency_key = idempotency_key
        if amount:
            self.amount = amount
        if raw_response is not None:
            self.raw_response = raw_response
        self.updated_at = clock.now()


@storefront.repository(part_of=PaymentTransaction)
class PaymentTransactionRepository:
    def find_by_idempotency_key(self, order_id, idempotency_key: str) -> PaymentTransaction | None:
        if not idempotency_key:
            return None
        return self._dao.query.filter(order_id=str(order_id), idempotency_key=idempotency_key).all().first

    def find_successful(self, order_id, type: TransactionType, transaction_id: str) -> PaymentTransaction | None:
        if not transaction_id:
            return None
        return (
            self._dao.query.filter(
                order_id=str(order_id),
                type=type.value,
                status=TransactionStatus.SUCCESSFUL.value,
                transaction_id=transaction_id,
            )
            .all()
            .first
        )

    def find_for_order(self, order_id) -> list[PaymentTransaction]:
        return self._dao.query.filter(order_id=str(order_id)).order_by("created_at").all().items

    def latest_pending(self, order_id, type: TransactionType) -> PaymentTransaction | None:
        return (
            self._dao.query.filter(
                order_id=str(order_id),
                type=type.value,
                status=TransactionStatus.PENDING.value,
            )
            .order_by("-created_at")
            .all()
            .first
        )

    def sum_successful(self, order_id, type: TransactionType) -> int:
        transactions = self._dao.query.filter(
            order_id=str(order_id),
            type=type.value,
            status=TransactionStatus.SUCCESSFUL.value,
        ).all()
        return sum(transaction.amount or 0 for transaction in transactions.items)
