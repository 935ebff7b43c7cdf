"""Discount aggregate for promotional codes applied to a checkout.

Fixed values and thresholds are stored in minor units of the discount's own
currency and converted to the checkout currency when applied. Rejections are
raised with the specific reason so the buyer sees why a code did not apply.
"""

import json
from datetime import UTC, datetime

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Integer, String, Text

from storefront.clock import naive_utc
from storefront.domain import storefront
from storefront.pricing.engine import DiscountMethod, DiscountTerms, DiscountType, calculate_discount


@storefront.aggregate
class Discount:
    code = String(required=True, max_length=50, unique=True)
    discount_type = String(choices=DiscountType, default=DiscountType.BASKET.value)
    method = String(choices=DiscountMethod, required=True)
    value = Float(required=True)
    currency_code = String(required=True, max_length=3)
    min_order_value = Integer(default=0, min_value=0)
    max_discount_value = Integer(default=0, min_value=0)
    product_ids = Text()  # JSON array of product ids
    start_date = DateTime()
    end_date = DateTime()
    usage_limit = Integer(default=0, min_value=0)  # 0 = unlimited
    current_usage = Integer(default=0, min_value=0)
    active = Boolean(default=True)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def value_must_fit_method(self):
        if self.value is None or self.value <= 0:
            raise ValidationError({"value": ["Discount value must be greater than zero"]})
        if self.method == DiscountMethod.PERCENTAGE.value and self.value > 100:
            raise ValidationError({"value": ["Percentage discount cannot exceed 100"]})

    @invariant.post
    def product_discount_needs_products(self):
        if self.discount_type == DiscountType.PRODUCT.value and not self.eligible_product_ids:
            raise ValidationError({"product_ids": ["Product discounts must list at least one product"]})

    @invariant.post
    def date_window_must_be_ordered(self):
        if self.start_date and self.end_date and naive_utc(self.end_date) < naive_utc(self.start_date):
            raise ValidationError({"end_date": ["End date must be after start date"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        code,
        method,
        value,
        currency_code,
        discount_type=DiscountType.BASKET.value,
        min_order_value=0,
        max_discount_value=0,
        product_ids=None,
        start_date=None,
        end_date=None,
        usage_limit=0,
    ):
        now = datetime.now(UTC)
        return cls(
            code=code.strip().upper(),
            method=method,
            value=value,
            currency_code=currency_code.upper(),
            discount_type=discount_type,
            min_order_value=min_order_value or 0,
            max_discount_value=max_discount_value or 0,
            product_ids=json.dumps([str(p) for p in (product_ids or [])]),
            start_date=start_date,
            end_date=end_date,
            usage_limit=usage_limit or 0,
            current_usage=0,
            active=True,
            created_at=now,
            updated_at=now,
        )

    @property
    def eligible_product_ids(self) -> frozenset:
        return frozenset(json.loads(self.product_ids or "[]"))

    # -------------------------------------------------------------------
    # Validity
    # -------------------------------------------------------------------
    def ensure_valid(self, now):
        """Reject the code if it cannot be used at ``now``, regardless of cart."""
        now = naive_utc(now)
        if not self.active:
            raise ValidationError({"discount_code": ["Discount code is not active"]})
        if self.start_date and now < naive_utc(self.start_date):
            raise ValidationError({"discount_code": ["Discount code is not yet valid"]})
        if self.end_date and now > naive_utc(self.end_date):
            raise ValidationError({"discount_code": ["Discount code has expired"]})
        if self.usage_limit and (self.current_usage or 0) >= self.usage_limit:
            raise ValidationError({"discount_code": ["Discount usage limit reached"]})

    def ensure_applicable(self, subtotal, now, min_order_value=None):
        """Reject the code for a cart with the given subtotal.

        ``min_order_value`` is the threshold already converted into the cart's
        currency; it defaults to the stored threshold.
        """
        self.ensure_valid(now)
        threshold = self.min_order_value if min_order_value is None else min_order_value
        if subtotal < (threshold or 0):
            raise ValidationError({"discount_code": ["Discount minimum order value not met"]})

    def terms_in(self, currency_code, converter) -> DiscountTerms:
        """Discount parameters converted into ``currency_code``."""

        def _convert(amount):
            if not amount:
                return 0
            return converter.convert(amount, self.currency_code, currency_code)

        method = DiscountMethod(self.method)
        value = self.value if method == DiscountMethod.PERCENTAGE else _convert(int(self.value))
        return DiscountTerms(
            method=method,
            value=value,
            discount_type=DiscountType(self.discount_type),
            min_order_value=_convert(self.min_order_value),
            max_discount_value=_convert(self.max_discount_value),
            product_ids=self.eligible_product_ids,
        )

    def amount_for(self, lines, currency_code, converter, now) -> int:
        """Validate against the cart and return the discount amount.

        Raises ``ValidationError`` with the rejection reason.
        """
        terms = self.terms_in(currency_code, converter)
        subtotal = sum(line.quantity * line.price for line in lines)
        self.ensure_applicable(subtotal, now, min_order_value=terms.min_order_value)
        amount = calculate_discount(terms, lines)
        if amount <= 0:
            raise ValidationError({"discount_code": ["Discount does not apply to any item in the cart"]})
        return amount

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def record_usage(self, now):
        self.ensure_valid(now)
        self.current_usage = (self.current_usage or 0) + 1
        self.updated_at = datetime.now(UTC)

    def deactivate(self):
        self.active = False
        self.updated_at = datetime.now(UTC)


@storefront.repository(part_of=Discount)
class DiscountRepository:
    def find_by_code(self, code: str) -> Discount | None:
        if not code:
            return None
        return self._dao.query.filter(code=code.strip().upper()).all().first
