"""Order aggregate (CQRS): the immutable snapshot of a completed checkout.

An Order is created exactly once per checkout by order conversion and is
never re-priced. After creation only two things move: the payment status,
driven by payment submission, privileged payment operations and provider
webhooks; and the fulfilment status (shipped, completed, cancelled).

Order status:    pending -> paid -> shipped -> completed
                 pending -> failed | cancelled, paid/shipped -> cancelled
Payment status:  pending -> authorized -> captured -> refunded
                 pending/authorized -> failed | cancelled
"""

from enum import Enum
from uuid import uuid4

from protean import atomic_change, invariant
from protean.exceptions import InvalidOperationError, ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, ValueObject

from storefront import clock
from storefront.domain import storefront
from storefront.order.events import (
    OrderCancelled,
    OrderCompleted,
    OrderPaid,
    OrderPaymentFailed,
    OrderPaymentStatusChanged,
    OrderPlaced,
    OrderShipped,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    SHIPPED = "shipped"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class PaymentStatus(Enum):
    PENDING = "pending"
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"
    FAILED = "failed"


_ORDER_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PAID, OrderStatus.CANCELLED, OrderStatus.FAILED},
    OrderStatus.PAID: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.COMPLETED, OrderStatus.CANCELLED},
    OrderStatus.COMPLETED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
    OrderStatus.FAILED: set(),  # Terminal
}

_PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {
        PaymentStatus.AUTHORIZED,
        PaymentStatus.CAPTURED,  # Immediate-capture processors
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
    },
    PaymentStatus.AUTHORIZED: {
        PaymentStatus.CAPTURED,
        PaymentStatus.REFUNDED,
        PaymentStatus.CANCELLED,
        PaymentStatus.FAILED,
    },
    PaymentStatus.CAPTURED: {PaymentStatus.REFUNDED},
    PaymentStatus.REFUNDED: {PaymentStatus.REFUNDED},  # Further partial refunds
    PaymentStatus.CANCELLED: set(),  # Terminal
    PaymentStatus.FAILED: set(),  # Terminal
}

REFUNDABLE_PAYMENT_STATES = {PaymentStatus.CAPTURED, PaymentStatus.REFUNDED}


def generate_order_number(now=None) -> str:
    """Order numbers look like ``ORD-20250114-9F3A1C2B``."""
    now = now or clock.now()
    return f"ORD-{now:%Y%m%d}-{uuid4().hex[:8].upper()}"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@storefront.value_object(part_of="Order")
class OrderAddress:
    """Where the order ships (or is billed), frozen at conversion time."""

    street_address = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    postal_code = String(required=True, max_length=20)
    country = String(required=True, max_length=2)


@storefront.value_object(part_of="Order")
class OrderCustomer:
    email = String(required=True, max_length=254)
    phone = String(max_length=20)
    full_name = String(max_length=200)


@storefront.value_object(part_of="Order")
class OrderShipping:
    shipping_rate_id = Identifier(required=True)
    name = String(required=True, max_length=100)
    estimated_delivery_days = Integer()
    cost = Integer(default=0, min_value=0)


@storefront.value_object(part_of="Order")
class OrderDiscount:
    discount_id = Identifier(required=True)
    code = String(required=True, max_length=50)
    amount = Integer(default=0, min_value=0)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@storefront.entity(part_of="Order")
class OrderItem:
    product_id = Identifier(required=True)
    variant_id = Identifier(required=True)
    sku = String(required=True, max_length=100)
    name = String(required=True, max_length=255)
    quantity = Integer(required=True, min_value=1)
    price = Integer(required=True, min_value=0)
    weight = Float(default=0.0)
    subtotal = Integer(required=True, min_value=0)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@storefront.aggregate
class Order:
    order_number = String(required=True, max_length=50, unique=True)
    checkout_id = Identifier(required=True)
    checkout_session_id = String(max_length=255)
    user_id = Identifier()
    currency = String(required=True, max_length=3)
    items = HasMany(OrderItem)
    total_amount = Integer(required=True, min_value=0)
    shipping_cost = Integer(default=0, min_value=0)
    discount_amount = Integer(default=0, min_value=0)
    final_amount = Integer(required=True, min_value=0)
    total_weight = Float(default=0.0)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    payment_provider = String(max_length=50)
    payment_method = String(max_length=50)
    payment_id = String(max_length=255)
    shipping_address = ValueObject(OrderAddress)
    billing_address = ValueObject(OrderAddress)
    customer = ValueObject(OrderCustomer)
    shipping = ValueObject(OrderShipping)
    applied_discount = ValueObject(OrderDiscount)
    tracking_number = String(max_length=255)
    created_at = DateTime()
    updated_at = DateTime()
    paid_at = DateTime()
    shipped_at = DateTime()
    completed_at = DateTime()
    cancelled_at = DateTime()

    @invariant.post
    def final_amount_matches_totals(self):
        expected = max(0, (self.total_amount or 0) + (self.shipping_cost or 0) - (self.discount_amount or 0))
        if self.final_amount != expected:
            raise ValidationError({"final_amount": ["Final amount does not match the order totals"]})

    @invariant.post
    def order_must_have_items(self):
        if self.total_amount and not self.items:
            raise ValidationError({"items": ["An order must contain at least one item"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        order_number,
        checkout_id,
        currency,
        items,
        total_amount,
        shipping_cost,
        discount_amount,
        final_amount,
        total_weight=0.0,
        checkout_session_id=None,
        user_id=None,
        payment_provider=None,
        shipping_address=None,
        billing_address=None,
        customer=None,
        shipping=None,
        applied_discount=None,
    ):
        if not items:
            raise ValidationError({"items": ["An order must contain at least one item"]})

        now = clock.now()
        order = cls(
            order_number=order_number,
            checkout_id=checkout_id,
            checkout_session_id=checkout_session_id,
            user_id=user_id,
            currency=currency,
            total_amount=0,
            final_amount=0,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            payment_provider=payment_provider,
            shipping_address=shipping_address,
            billing_address=billing_address,
            customer=customer,
            shipping=shipping,
            applied_discount=applied_discount,
            created_at=now,
            updated_at=now,
        )
        # Totals only hold once the items are attached
        with atomic_change(order):
            order.add_items(items)
            order.total_amount = total_amount
            order.shipping_cost = shipping_cost
            order.discount_amount = discount_amount
            order.final_amount = final_amount
            order.total_weight = total_weight

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order_number,
                checkout_id=str(checkout_id),
                user_id=str(user_id) if user_id else None,
                currency=currency,
                final_amount=final_amount,
                item_count=sum(item.quantity for item in items),
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Access
    # -------------------------------------------------------------------
    def is_visible_to(self, user_id=None, is_admin=False, session_id=None) -> bool:
        if is_admin:
            return True
        if user_id and self.user_id and str(self.user_id) == str(user_id):
            return True
        return bool(session_id) and self.checkout_session_id == session_id

    # -------------------------------------------------------------------
    # Order status
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status):
        current = OrderStatus(self.status)
        if target_status not in _ORDER_TRANSITIONS.get(current, set()):
            raise InvalidOperationError(f"Cannot transition order from {current.value} to {target_status.value}")

    def _move_to(self, target_status):
        self._assert_can_transition(target_status)
        previous = self.status
        now = clock.now()
        self.status = target_status.value
        self.updated_at = now

        if target_status == OrderStatus.PAID:
            self.paid_at = now
            self.raise_(
                OrderPaid(
                    order_id=str(self.id),
                    order_number=self.order_number,
                    payment_provider=self.payment_provider,
                    final_amount=self.final_amount,
                    currency=self.currency,
                    paid_at=now,
                )
            )
        elif target_status == OrderStatus.FAILED:
            self.raise_(OrderPaymentFailed(order_id=str(self.id), order_number=self.order_number, failed_at=now))
        elif target_status == OrderStatus.COMPLETED:
            self.completed_at = now
            self.raise_(OrderCompleted(order_id=str(self.id), completed_at=now))
        elif target_status == OrderStatus.CANCELLED:
            self.cancelled_at = now
            self.raise_(OrderCancelled(order_id=str(self.id), previous_status=previous, cancelled_at=now))

    def ship(self, tracking_number=None):
        self._assert_can_transition(OrderStatus.SHIPPED)
        now = clock.now()
        self.status = OrderStatus.SHIPPED.value
        self.tracking_number = tracking_number
        self.shipped_at = now
        self.updated_at = now
        self.raise_(
            OrderShipped(
                order_id=str(self.id),
                order_number=self.order_number,
                tracking_number=tracking_number,
                shipped_at=now,
            )
        )

    def complete(self):
        self._move_to(OrderStatus.COMPLETED)

    def cancel(self):
        self._move_to(OrderStatus.CANCELLED)

    # -------------------------------------------------------------------
    # Payment
    # -------------------------------------------------------------------
    def record_payment_reference(self, provider, method, payment_id):
        """Remember which provider holds the payment and under which id."""
        if OrderStatus(self.status) != OrderStatus.PENDING:
            raise InvalidOperationError(f"Cannot attach a payment to a {self.status} order")
        self.payment_provider = provider
        self.payment_method = method
        if payment_id:
            self.payment_id = payment_id
        self.updated_at = clock.now()

    def can_advance_payment_to(self, target: PaymentStatus) -> bool:
        current = PaymentStatus(self.payment_status)
        return target in _PAYMENT_TRANSITIONS.get(current, set())

    def update_payment_status(self, target: PaymentStatus, payment_id=None):
        """Advance the payment status and apply its effect on the order status."""
        current = PaymentStatus(self.payment_status)
        if target not in _PAYMENT_TRANSITIONS.get(current, set()):
            raise InvalidOperationError(f"Cannot change payment status from {current.value} to {target.value}")

        now = clock.now()
        self.payment_status = target.value
        if payment_id:
            self.payment_id = payment_id
        self.updated_at = now

        self.raise_(
            OrderPaymentStatusChanged(
                order_id=str(self.id),
                previous_status=current.value,
                new_status=target.value,
                payment_id=self.payment_id,
                changed_at=now,
            )
        )

        order_status = OrderStatus(self.status)
        if target in (PaymentStatus.AUTHORIZED, PaymentStatus.CAPTURED) and order_status == OrderStatus.PENDING:
            self._move_to(OrderStatus.PAID)
        elif target == PaymentStatus.CAPTURED and order_status == OrderStatus.SHIPPED:
            self._move_to(OrderStatus.COMPLETED)
        elif target == PaymentStatus.FAILED and order_status == OrderStatus.PENDING:
            self._move_to(OrderStatus.FAILED)
        elif target == PaymentStatus.CANCELLED and order_status in (OrderStatus.PENDING, OrderStatus.PAID):
            self._move_to(OrderStatus.CANCELLED)

    def mark_payment_failed(self):
        self.update_payment_status(PaymentStatus.FAILED)


@storefront.repository(part_of=Order)
class OrderRepository:
    def find_by_payment_id(self, payment_id: str) -> Order | None:
        if not payment_id:
            return None
        return self._dao.query.filter(payment_id=payment_id).all().first

    def find_by_order_number(self, order_number: str) -> Order | None:
        return self._dao.query.filter(order_number=order_number).all().first

    def find_for_user(self, user_id: str) -> list[Order]:
        return self._dao.query.filter(user_id=user_id).order_by("-created_at").all().items

    def find_by_status(self, status: OrderStatus | None = None) -> list[Order]:
        query = self._dao.query
        if status is not None:
            query = query.filter(status=status.value)
        return query.order_by("-created_at").all().items
