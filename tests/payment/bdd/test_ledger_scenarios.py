"""BDD tests for the webhook-driven payment ledger."""

from protean import current_domain
from pytest_bdd import parsers, scenarios, then, when

from storefront.order.order import Order
from storefront.payment.operations import refund_payment
from storefront.payment.transaction import PaymentTransaction, TransactionStatus, TransactionType
from storefront.payment.webhook import RecordPaymentEvent, record_payment_event

scenarios("features/payment_ledger.feature")


def _deliver(order, event_type, key, amount=0, refunded_total=None):
    return record_payment_event(
        RecordPaymentEvent(
            provider="mock",
            event_type=event_type,
            payment_id=order.payment_id,
            transaction_id=f"txn-{key}",
            idempotency_key=key,
            amount=amount,
            refunded_total=refunded_total,
            currency=order.currency,
        )
    )


def _current(order):
    return current_domain.repository_for(Order).get(order.id)


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('the provider reports "{event_type}" with key "{key}"'))
def provider_reports(order, ledger, event_type, key):
    ledger["outcome"] = _deliver(order, event_type, key)


@when(parsers.cfparse('the provider reports a refund of {amount:d} with key "{key}"'))
def provider_reports_refund(order, ledger, amount, key):
    ledger["outcome"] = _deliver(order, "refunded", key, amount=amount)


@when(parsers.cfparse("an administrator refunds {amount:d}"))
def administrator_refunds(order, amount):
    refund_payment(order.payment_id, amount)


@when(parsers.cfparse('the provider reports refunds totalling {total:d} with key "{key}"'))
def provider_reports_refund_total(order, ledger, total, key):
    ledger["outcome"] = _deliver(order, "refunded", key, refunded_total=total)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the ledger outcome is "{outcome}"'))
def ledger_outcome_is(ledger, outcome):
    assert ledger["outcome"].value == outcome


@then(parsers.cfparse('the payment status is "{status}"'))
def payment_status_is(order, status):
    assert _current(order).payment_status == status


@then(parsers.cfparse('the order status is "{status}"'))
def order_status_is(order, status):
    assert _current(order).status == status


@then(parsers.cfparse('the order has {count:d} successful "{type_}" transaction'))
def successful_transactions(order, count, type_):
    transactions = current_domain.repository_for(PaymentTransaction).find_for_order(order.id)
    matching = [t for t in transactions if t.type == type_ and t.status == TransactionStatus.SUCCESSFUL.value]
    assert len(matching) == count


@then(parsers.cfparse("the order has {total:d} refunded in total"))
def refunded_in_total(order, total):
    assert current_domain.repository_for(PaymentTransaction).sum_successful(order.id, TransactionType.REFUND) == total
