"""Payment submission — command and handler.

Sends a pending order's payment to its provider and records what happened.
A declined payment or a provider error is an outcome, not an exception: the
order moves to ``failed``, a failed transaction is stored, and the unit of
work commits normally so the order is never rolled back. Buyers only ever
see "Payment failed"; the provider's reason goes to the log.
"""

from dataclasses import asdict, dataclass
from uuid import uuid4

import structlog
from protean import handle
from protean.exceptions import InvalidOperationError, ValidationError
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.order.order import Order, OrderStatus, PaymentStatus
from storefront.payment.gateway import get_gateways
from storefront.payment.gateway.port import (
    CardDetails,
    PaymentMethod,
    PaymentProviderError,
    PaymentRequest,
    PaymentResult,
)
from storefront.payment.transaction import PaymentTransaction, TransactionStatus, TransactionType

logger = structlog.get_logger(__name__)

PAYMENT_FAILED_MESSAGE = "Payment failed"


@dataclass(frozen=True)
class PaymentOutcome:
    order_id: str
    status: str  # succeeded, requires_action, failed
    payment_status: str
    message: str = ""
    action_url: str | None = None
    payment_id: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"

    def to_dict(self) -> dict:
        return asdict(self)


@storefront.command(part_of="Order")
class SubmitPayment:
    """Pay for a pending order with the chosen provider and method."""

    order_id = Identifier(required=True)
    provider = String(max_length=50)
    payment_method = String(required=True, max_length=50)
    card_number = String(max_length=19)
    card_expiry_month = Integer()
    card_expiry_year = Integer()
    card_cvv = String(max_length=4)
    card_holder_name = String(max_length=200)
    card_token = String(max_length=255)
    phone_number = String(max_length=20)
    idempotency_key = String(max_length=255)


def payment_method_from(value) -> PaymentMethod:
    try:
        return PaymentMethod(value)
    except ValueError:
        raise ValidationError({"payment_method": [f"Unknown payment method: {value}"]}) from None


def card_details_from(source) -> CardDetails | None:
    """Card details carried by a command or request body, if any."""
    if not (source.card_number or source.card_token):
        return None
    return CardDetails(
        number=source.card_number,
        expiry_month=source.card_expiry_month,
        expiry_year=source.card_expiry_year,
        cvv=source.card_cvv,
        holder_name=source.card_holder_name,
        token=source.card_token,
    )


@storefront.command_handler(part_of=Order)
class SubmitPaymentHandler:
    @handle(SubmitPayment)
    def submit_payment(self, command):
        order_repo = current_domain.repository_for(Order)
        order = order_repo.get(command.order_id)

        if OrderStatus(order.status) != OrderStatus.PENDING or PaymentStatus(order.payment_status) != PaymentStatus.PENDING:
            raise InvalidOperationError(
                f"Order {order.order_number} cannot be paid: status {order.status}, payment {order.payment_status}"
            )
        if order.customer is None or not order.customer.email:
            raise ValidationError({"customer_email": ["Customer email is required to submit a payment"]})

        provider = command.provider or order.payment_provider
        if not provider:
            raise ValidationError({"provider": ["A payment provider is required"]})
        gateway = get_gateways().get(provider)
        method = payment_method_from(command.payment_method)

        request = PaymentRequest(
            order_id=str(order.id),
            order_number=order.order_number,
            amount=order.final_amount,
            currency=order.currency,
            method=method,
            provider=gateway.provider,
            card_details=card_details_from(command),
            phone_number=command.phone_number,
            customer_email=order.customer.email,
            idempotency_key=command.idempotency_key or f"{order.id}-{uuid4().hex}",
        )
        gateway.validate_request(request)

        try:
            result = gateway.process_payment(request)
        except PaymentProviderError as exc:
            logger.error(
                "Payment provider error",
                order_id=str(order.id),
                provider=exc.provider,
                reason=exc.reason,
            )
            result = PaymentResult(success=False, provider=gateway.provider, message=exc.reason)

        transactions = current_domain.repository_for(PaymentTransaction)
        provider_name = gateway.provider.value

        def _transaction(type_, status, transaction_id=None, raw_response=None):
            transactions.add(
                PaymentTransaction.record(
                    order_id=str(order.id),
                    type=type_,
                    status=status,
                    amount=order.final_amount,
                    currency=order.currency,
                    provider=provider_name,
                    transaction_id=transaction_id,
                    raw_response=raw_response,
                    metadata={"payment_method": method.value},
                )
            )

        if result.requires_action:
            order.record_payment_reference(provider_name, method.value, result.transaction_id)
            _transaction(TransactionType.AUTHORIZE, TransactionStatus.PENDING, result.transaction_id, result.message)
            order_repo.add(order)
            logger.info("Payment requires buyer action", order_id=str(order.id), payment_id=result.transaction_id)
            return PaymentOutcome(
                order_id=str(order.id),
                status="requires_action",
                payment_status=order.payment_status,
                message=result.message,
                action_url=result.action_url,
                payment_id=result.transaction_id,
            )

        if result.success:
            order.record_payment_reference(provider_name, method.value, result.transaction_id)
            target = PaymentStatus.CAPTURED if result.captured else PaymentStatus.AUTHORIZED
            order.update_payment_status(target, payment_id=result.transaction_id)
            _transaction(TransactionType.AUTHORIZE, TransactionStatus.SUCCESSFUL, result.transaction_id, result.message)
            if result.captured:
                _transaction(TransactionType.CAPTURE, TransactionStatus.SUCCESSFUL, result.transaction_id, result.message)
            order_repo.add(order)
            logger.info(
                "Payment succeeded",
                order_id=str(order.id),
                payment_id=result.transaction_id,
                payment_status=order.payment_status,
            )
            return PaymentOutcome(
                order_id=str(order.id),
                status="succeeded",
                payment_status=order.payment_status,
                message=result.message,
                payment_id=result.transaction_id,
            )

        # Declined or provider error: commit the failure
        order.record_payment_reference(provider_name, method.value, result.transaction_id)
        order.mark_payment_failed()
        _transaction(TransactionType.AUTHORIZE, TransactionStatus.FAILED, result.transaction_id, result.message)
        order_repo.add(order)
        logger.warning("Payment failed", order_id=str(order.id), provider=provider_name, reason=result.message)
        return PaymentOutcome(
            order_id=str(order.id),
            status="failed",
            payment_status=order.payment_status,
            message=PAYMENT_FAILED_MESSAGE,
            payment_id=result.transaction_id,
        )
