"""Privileged payment operations: capture, cancel, refund, force-approve.

Each operation addresses the payment by its external id. The handlers call
the order's provider and always commit what happened: a successful call
advances the order's payment status, a failed one leaves a ``failed``
transaction behind. The module-level functions are what callers use; they
run the command and turn a failed outcome into ``PaymentProviderError``
once the failure has been committed.
"""

from dataclasses import dataclass

import structlog
from protean import handle
from protean.exceptions import InvalidOperationError, ObjectNotFoundError, ValidationError
from protean.fields import Integer, String
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.order.order import REFUNDABLE_PAYMENT_STATES, Order, PaymentStatus
from storefront.payment.gateway import get_gateways
from storefront.payment.gateway.port import PaymentProviderError, PaymentResult
from storefront.payment.transaction import PaymentTransaction, TransactionStatus, TransactionType

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class OperationOutcome:
    order_id: str
    payment_id: str
    operation: str
    success: bool
    amount: int = 0
    payment_status: str | None = None
    provider: str | None = None
    reason: str | None = None

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "payment_id": self.payment_id,
            "operation": self.operation,
            "success": self.success,
            "amount": self.amount,
            "payment_status": self.payment_status,
        }


@storefront.command(part_of="Order")
class CapturePayment:
    """Capture an authorized payment, in full when no amount is given."""

    payment_id = String(required=True, max_length=255)
    amount = Integer()


@storefront.command(part_of="Order")
class CancelPayment:
    payment_id = String(required=True, max_length=255)


@storefront.command(part_of="Order")
class RefundPayment:
    """Refund captured funds, the whole remaining balance when no amount is given."""

    payment_id = String(required=True, max_length=255)
    amount = Integer()


@storefront.command(part_of="Order")
class ForceApprovePayment:
    """Approve a sandbox wallet payment without the buyer's phone."""

    payment_id = String(required=True, max_length=255)
    phone_number = String(required=True, max_length=20)


def _order_for_payment(payment_id) -> Order:
    order = current_domain.repository_for(Order).find_by_payment_id(payment_id)
    if order is None:
        raise ObjectNotFoundError(f"No order found for payment {payment_id}")
    return order


def _require_payment_status(order: Order, allowed: set, action: str) -> None:
    if PaymentStatus(order.payment_status) not in allowed:
        raise InvalidOperationError(f"Cannot {action} a payment that is {order.payment_status}")


def _call_provider(order: Order, operation: str, call) -> PaymentResult:
    gateway = get_gateways().get(order.payment_provider)
    try:
        return call(gateway)
    except PaymentProviderError as exc:
        logger.error(
            f"Payment {operation} failed at provider",
            order_id=str(order.id),
            payment_id=order.payment_id,
            provider=exc.provider,
            reason=exc.reason,
        )
        return PaymentResult(success=False, provider=gateway.provider, message=exc.reason)


def _record(order: Order, type_: TransactionType, result: PaymentResult, amount: int) -> None:
    current_domain.repository_for(PaymentTransaction).add(
        PaymentTransaction.record(
            order_id=str(order.id),
            type=type_,
            status=TransactionStatus.SUCCESSFUL if result.success else TransactionStatus.FAILED,
            amount=amount,
            currency=order.currency,
            provider=order.payment_provider,
            transaction_id=result.transaction_id or order.payment_id,
            raw_response=result.message,
        )
    )


def _outcome(order: Order, operation: str, result: PaymentResult, amount: int) -> OperationOutcome:
    return OperationOutcome(
        order_id=str(order.id),
        payment_id=order.payment_id,
        operation=operation,
        success=result.success,
        amount=amount,
        payment_status=order.payment_status,
        provider=order.payment_provider,
        reason=None if result.success else result.message,
    )


@storefront.command_handler(part_of=Order)
class PaymentOperationsHandler:
    @handle(CapturePayment)
    def capture_payment(self, command):
        order = _order_for_payment(command.payment_id)
        _require_payment_status(order, {PaymentStatus.AUTHORIZED}, "capture")

        amount = order.final_amount if command.amount is None else command.amount
        if amount <= 0 or amount > order.final_amount:
            raise ValidationError({"amount": [f"Capture amount must be between 1 and {order.final_amount}"]})

        result = _call_provider(
            order, "capture", lambda gateway: gateway.capture_payment(order.payment_id, amount, order.currency)
        )
        _record(order, TransactionType.CAPTURE, result, amount)
        if result.success:
            order.update_payment_status(PaymentStatus.CAPTURED)
            current_domain.repository_for(Order).add(order)
            logger.info("Payment captured", order_id=str(order.id), payment_id=order.payment_id, amount=amount)
        return _outcome(order, "capture", result, amount)

    @handle(CancelPayment)
    def cancel_payment(self, command):
        order = _order_for_payment(command.payment_id)
        _require_payment_status(order, {PaymentStatus.AUTHORIZED}, "cancel")

        result = _call_provider(order, "cancel", lambda gateway: gateway.cancel_payment(order.payment_id))
        _record(order, TransactionType.CANCEL, result, 0)
        if result.success:
            order.update_payment_status(PaymentStatus.CANCELLED)
            current_domain.repository_for(Order).add(order)
            logger.info("Payment cancelled", order_id=str(order.id), payment_id=order.payment_id)
        return _outcome(order, "cancel", result, 0)

    @handle(RefundPayment)
    def refund_payment(self, command):
        order = _order_for_payment(command.payment_id)
        _require_payment_status(order, REFUNDABLE_PAYMENT_STATES, "refund")

        transactions = current_domain.repository_for(PaymentTransaction)
        captured = transactions.sum_successful(order.id, TransactionType.CAPTURE)
        refunded = transactions.sum_successful(order.id, TransactionType.REFUND)
        remaining = captured - refunded

        amount = remaining if command.amount is None else command.amount
        if amount <= 0:
            raise ValidationError({"amount": ["Refund amount must be greater than zero"]})
        if amount > remaining:
            raise ValidationError(
                {"amount": [f"Refund of {amount} exceeds the remaining captured balance of {remaining}"]}
            )

        result = _call_provider(
            order, "refund", lambda gateway: gateway.refund_payment(order.payment_id, amount, order.currency)
        )
        _record(order, TransactionType.REFUND, result, amount)
        if result.success:
            order.update_payment_status(PaymentStatus.REFUNDED)
            current_domain.repository_for(Order).add(order)
            logger.info(
                "Payment refunded",
                order_id=str(order.id),
                payment_id=order.payment_id,
                amount=amount,
                remaining=remaining - amount,
            )
        return _outcome(order, "refund", result, amount)

    @handle(ForceApprovePayment)
    def force_approve_payment(self, command):
        order = _order_for_payment(command.payment_id)
        _require_payment_status(order, {PaymentStatus.PENDING}, "force-approve")

        gateway = get_gateways().get(order.payment_provider)
        gateway.force_approve_payment(order.payment_id, command.phone_number)
        logger.info("Payment force-approved", order_id=str(order.id), payment_id=order.payment_id)
        return OperationOutcome(
            order_id=str(order.id),
            payment_id=order.payment_id,
            operation="force_approve",
            success=True,
            payment_status=order.payment_status,
            provider=order.payment_provider,
        )


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------
def _run(command) -> OperationOutcome:
    outcome = current_domain.process(command, asynchronous=False)
    if not outcome.success:
        raise PaymentProviderError(outcome.provider or "unknown", outcome.reason or f"{outcome.operation} failed")
    return outcome


def capture_payment(payment_id: str, amount: int | None = None) -> OperationOutcome:
    return _run(CapturePayment(payment_id=payment_id, amount=amount))


def cancel_payment(payment_id: str) -> OperationOutcome:
    return _run(CancelPayment(payment_id=payment_id))


def refund_payment(payment_id: str, amount: int | None = None) -> OperationOutcome:
    return _run(RefundPayment(payment_id=payment_id, amount=amount))


def force_approve_payment(payment_id: str, phone_number: str) -> OperationOutcome:
    """Force-approve errors from the provider propagate; there is nothing to record."""
    return current_domain.process(
        ForceApprovePayment(payment_id=payment_id, phone_number=phone_number), asynchronous=False
    )
