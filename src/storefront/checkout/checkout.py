"""Checkout aggregate (CQRS): the mutable cart that becomes an Order.

A checkout is bound to a browser session and, optionally, a user. Every cart
mutation keeps it ``active`` and recomputes its totals through the pricing
engine, so ``final_amount`` is always derivable from the items, the selected
shipping option and the applied discount. The only way out of ``active`` is
order conversion (``completed``) or the expiry sweeper (``abandoned`` /
``expired``).
"""

from datetime import timedelta
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import InvalidOperationError, ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Identifier, Integer, String, ValueObject

from storefront import clock
from storefront.checkout.events import (
    CheckoutAbandoned,
    CheckoutCleared,
    CheckoutCompleted,
    CheckoutCurrencyChanged,
    CheckoutDiscountApplied,
    CheckoutExpired,
    CheckoutItemAdded,
    CheckoutItemRemoved,
    CheckoutItemUpdated,
)
from storefront.config import setting_int
from storefront.domain import storefront
from storefront.pricing.engine import PricedLine, calculate_totals
from storefront.pricing.engine import final_amount as expected_final_amount


class CheckoutStatus(Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"
    EXPIRED = "expired"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@storefront.value_object(part_of="Checkout")
class CheckoutAddress:
    street_address = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    postal_code = String(required=True, max_length=20)
    country = String(required=True, max_length=2)


@storefront.value_object(part_of="Checkout")
class CustomerDetails:
    email = String(required=True, max_length=254)
    phone = String(max_length=20)
    full_name = String(max_length=200)


@storefront.value_object(part_of="Checkout")
class ShippingSelection:
    """A shipping rate chosen by the buyer, quoted in the checkout currency."""

    shipping_rate_id = Identifier(required=True)
    name = String(required=True, max_length=100)
    description = String(max_length=500)
    estimated_delivery_days = Integer()
    cost = Integer(default=0, min_value=0)
    free_shipping = Boolean(default=False)


@storefront.value_object(part_of="Checkout")
class AppliedDiscount:
    """Snapshot of a discount: its id, its code and the amount it takes off."""

    discount_id = Identifier(required=True)
    code = String(required=True, max_length=50)
    amount = Integer(default=0, min_value=0)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@storefront.entity(part_of="Checkout")
class CheckoutItem:
    product_id = Identifier(required=True)
    variant_id = Identifier(required=True)
    sku = String(required=True, max_length=100)
    name = String(required=True, max_length=255)
    quantity = Integer(required=True, min_value=1)
    price = Integer(required=True, min_value=0)  # frozen at add-time, checkout currency
    weight = Float(default=0.0)

    @property
    def subtotal(self):
        return self.quantity * self.price


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@storefront.aggregate
class Checkout:
    session_id = String(required=True, max_length=255)
    user_id = Identifier()
    currency = String(required=True, max_length=3)
    status = String(choices=CheckoutStatus, default=CheckoutStatus.ACTIVE.value)
    items = HasMany(CheckoutItem)
    shipping_address = ValueObject(CheckoutAddress)
    billing_address = ValueObject(CheckoutAddress)
    customer_details = ValueObject(CustomerDetails)
    shipping_option = ValueObject(ShippingSelection)
    applied_discount = ValueObject(AppliedDiscount)
    payment_provider = String(max_length=50)
    subtotal = Integer(default=0)
    shipping_cost = Integer(default=0)
    discount_amount = Integer(default=0)
    final_amount = Integer(default=0)
    total_weight = Float(default=0.0)
    created_at = DateTime()
    last_activity_at = DateTime()
    expires_at = DateTime()
    completed_at = DateTime()
    abandoned_at = DateTime()
    converted_order_id = Identifier()

    @invariant.post
    def totals_must_match_components(self):
        expected = expected_final_amount(self.subtotal or 0, self.shipping_cost or 0, self.discount_amount or 0)
        if self.final_amount != expected:
            raise ValidationError({"final_amount": ["Final amount does not match subtotal, shipping and discount"]})

    @invariant.post
    def completed_checkout_must_have_items(self):
        if self.status == CheckoutStatus.COMPLETED.value and not self.items:
            raise ValidationError({"items": ["A checkout without items cannot be completed"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, session_id, currency, user_id=None):
        now = clock.now()
        return cls(
            session_id=session_id,
            user_id=user_id,
            currency=currency.upper(),
            status=CheckoutStatus.ACTIVE.value,
            subtotal=0,
            shipping_cost=0,
            discount_amount=0,
            final_amount=0,
            total_weight=0.0,
            created_at=now,
            last_activity_at=now,
            expires_at=now + timedelta(hours=setting_int("CHECKOUT_TTL_HOURS", 24)),
        )

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def has_items(self) -> bool:
        return bool(self.items)

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    def find_item(self, sku) -> CheckoutItem | None:
        return next((i for i in self.items if i.sku == sku), None)

    def quantity_of(self, sku) -> int:
        item = self.find_item(sku)
        return item.quantity if item else 0

    def priced_lines(self) -> list[PricedLine]:
        return [
            PricedLine(
                sku=item.sku,
                quantity=item.quantity,
                price=item.price,
                weight=item.weight or 0.0,
                product_id=str(item.product_id),
            )
            for item in self.items
        ]

    # -------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------
    def _ensure_active(self, action):
        if CheckoutStatus(self.status) != CheckoutStatus.ACTIVE:
            raise InvalidOperationError(f"Cannot {action}: checkout is {self.status}")

    def _touch(self):
        now = clock.now()
        self.last_activity_at = now
        self.expires_at = now + timedelta(hours=setting_int("CHECKOUT_TTL_HOURS", 24))

    def _recalculate_totals(self):
        shipping_cost = self.shipping_option.cost if self.shipping_option else 0
        discount_amount = self.applied_discount.amount if self.applied_discount else 0
        totals = calculate_totals(self.priced_lines(), shipping_cost=shipping_cost, discount_amount=discount_amount)
        self.subtotal = totals.subtotal
        self.shipping_cost = totals.shipping_cost
        self.discount_amount = totals.discount_amount
        self.final_amount = totals.final_amount
        self.total_weight = totals.total_weight

    # -------------------------------------------------------------------
    # Item management
    # -------------------------------------------------------------------
    def add_item(self, product_id, variant_id, sku, name, price, quantity, weight=0.0):
        """Add a line, or increase the quantity of an existing line for the same SKU."""
        self._ensure_active("add items")
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        with atomic_change(self):
            existing = self.find_item(sku)
            if existing:
                existing.quantity += quantity
            else:
                self.add_items(
                    CheckoutItem(
                        product_id=product_id,
                        variant_id=variant_id,
                        sku=sku,
                        name=name,
                        quantity=quantity,
                        price=price,
                        weight=weight or 0.0,
                    )
                )
            self._touch()
            self._recalculate_totals()

        self.raise_(CheckoutItemAdded(checkout_id=str(self.id), sku=sku, quantity=quantity, price=price))

    def update_item(self, sku, quantity):
        self._ensure_active("update items")
        item = self.find_item(sku)
        if item is None:
            raise ValidationError({"sku": [f"Item {sku} is not in the checkout"]})
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        previous_quantity = item.quantity
        with atomic_change(self):
            item.quantity = quantity
            self._touch()
            self._recalculate_totals()

        self.raise_(
            CheckoutItemUpdated(
                checkout_id=str(self.id),
                sku=sku,
                previous_quantity=previous_quantity,
                new_quantity=quantity,
            )
        )

    def remove_item(self, sku):
        self._ensure_active("remove items")
        item = self.find_item(sku)
        if item is None:
            raise ValidationError({"sku": [f"Item {sku} is not in the checkout"]})

        with atomic_change(self):
            self.remove_items(item)
            self._touch()
            self._recalculate_totals()

        self.raise_(CheckoutItemRemoved(checkout_id=str(self.id), sku=sku))

    def clear(self):
        """Remove every line along with the shipping selection and discount."""
        self._ensure_active("clear")
        with atomic_change(self):
            for item in list(self.items):
                self.remove_items(item)
            self.shipping_option = None
            self.applied_discount = None
            self._touch()
            self._recalculate_totals()

        self.raise_(CheckoutCleared(checkout_id=str(self.id)))

    # -------------------------------------------------------------------
    # Addresses and contact details
    # -------------------------------------------------------------------
    def set_shipping_address(self, address: CheckoutAddress):
        self._ensure_active("set the shipping address")
        self.shipping_address = address
        self._touch()

    def set_billing_address(self, address: CheckoutAddress):
        self._ensure_active("set the billing address")
        self.billing_address = address
        self._touch()

    def set_customer_details(self, details: CustomerDetails):
        self._ensure_active("set customer details")
        self.customer_details = details
        self._touch()

    def set_payment_provider(self, provider):
        self._ensure_active("choose a payment provider")
        self.payment_provider = provider
        self._touch()

    # -------------------------------------------------------------------
    # Pricing inputs
    # -------------------------------------------------------------------
    def select_shipping(self, selection: ShippingSelection | None):
        self._ensure_active("select a shipping method")
        with atomic_change(self):
            self.shipping_option = selection
            self._touch()
            self._recalculate_totals()

    def apply_discount(self, discount: AppliedDiscount):
        self._ensure_active("apply a discount")
        if self.applied_discount and self.applied_discount.code == discount.code:
            raise InvalidOperationError(f"Discount code {discount.code} is already applied")

        with atomic_change(self):
            self.applied_discount = discount
            self._touch()
            self._recalculate_totals()

        self.raise_(
            CheckoutDiscountApplied(
                checkout_id=str(self.id),
                discount_id=str(discount.discount_id),
                code=discount.code,
                amount=discount.amount,
            )
        )

    def remove_discount(self):
        self._ensure_active("remove a discount")
        if self.applied_discount is None:
            raise ValidationError({"discount_code": ["No discount is applied"]})
        with atomic_change(self):
            self.applied_discount = None
            self._touch()
            self._recalculate_totals()

    def reprice(self, shipping_option: ShippingSelection | None, applied_discount: AppliedDiscount | None):
        """Replace the shipping quote and discount snapshot and recompute totals."""
        self._ensure_active("reprice")
        with atomic_change(self):
            self.shipping_option = shipping_option
            self.applied_discount = applied_discount
            self._recalculate_totals()

    def change_currency(self, currency, item_prices: dict, shipping_option, applied_discount):
        """Reprice every line into ``currency``.

        ``item_prices`` maps each SKU to its price in the new currency; a
        missing SKU rejects the whole change.
        """
        self._ensure_active("change currency")
        currency = currency.upper()
        missing = [item.sku for item in self.items if item.sku not in item_prices]
        if missing:
            raise ValidationError({"currency": [f"Products unavailable in {currency}: {', '.join(missing)}"]})

        previous = self.currency
        with atomic_change(self):
            for item in self.items:
                item.price = item_prices[item.sku]
            self.currency = currency
            self.shipping_option = shipping_option
            self.applied_discount = applied_discount
            self._touch()
            self._recalculate_totals()

        if previous != currency:
            self.raise_(
                CheckoutCurrencyChanged(
                    checkout_id=str(self.id),
                    previous_currency=previous,
                    new_currency=currency,
                )
            )

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def mark_completed(self, order_id):
        self._ensure_active("complete")
        if not self.items:
            raise InvalidOperationError("Cannot complete a checkout without items")

        now = clock.now()
        self.status = CheckoutStatus.COMPLETED.value
        self.completed_at = now
        self.converted_order_id = order_id

        self.raise_(CheckoutCompleted(checkout_id=str(self.id), order_id=str(order_id), completed_at=now))

    def mark_abandoned(self, at=None):
        self._ensure_active("abandon")
        now = at or clock.now()
        self.status = CheckoutStatus.ABANDONED.value
        self.abandoned_at = now
        self.raise_(
            CheckoutAbandoned(
                checkout_id=str(self.id),
                session_id=self.session_id,
                item_count=self.item_count,
                abandoned_at=now,
            )
        )

    def mark_expired(self, at=None):
        self._ensure_active("expire")
        now = at or clock.now()
        self.status = CheckoutStatus.EXPIRED.value
        self.raise_(CheckoutExpired(checkout_id=str(self.id), expired_at=now))

    def attach_user(self, user_id):
        if not self.user_id:
            self.user_id = user_id


@storefront.repository(part_of=Checkout)
class CheckoutRepository:
    def find_active_by_session(self, session_id: str) -> Checkout | None:
        if not session_id:
            return None
        return (
            self._dao.query.filter(session_id=session_id, status=CheckoutStatus.ACTIVE.value)
            .order_by("-created_at")
            .all()
            .first
        )

    def find_by_status(self, status: CheckoutStatus) -> list[Checkout]:
        return self._dao.query.filter(status=status.value).all().items

    def find_non_active(self) -> list[Checkout]:
        return [
            checkout
            for status in (CheckoutStatus.ABANDONED, CheckoutStatus.EXPIRED)
            for checkout in self.find_by_status(status)
        ]

    def remove(self, checkout: Checkout) -> None:
        self._dao.delete(checkout)
