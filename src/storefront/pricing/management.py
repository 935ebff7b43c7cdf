"""Discount management — commands and handler."""

import json

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import DateTime, Float, Integer, String, Text
from protean.utils.globals import current_domain

from storefront.config import default_currency_code
from storefront.domain import storefront
from storefront.pricing.discount import Discount
from storefront.pricing.engine import DiscountMethod, DiscountType

logger = structlog.get_logger(__name__)


@storefront.command(part_of="Discount")
class CreateDiscount:
    code = String(required=True, max_length=50)
    method = String(required=True, choices=DiscountMethod)
    value = Float(required=True)
    discount_type = String(choices=DiscountType, default=DiscountType.BASKET.value)
    currency_code = String(max_length=3)
    min_order_value = Integer(default=0)
    max_discount_value = Integer(default=0)
    product_ids = Text()  # JSON array of product ids
    start_date = DateTime()
    end_date = DateTime()
    usage_limit = Integer(default=0)


@storefront.command(part_of="Discount")
class DeactivateDiscount:
    code = String(required=True, max_length=50)


@storefront.command_handler(part_of=Discount)
class DiscountManagementHandler:
    @handle(CreateDiscount)
    def create_discount(self, command):
        repo = current_domain.repository_for(Discount)
        if repo.find_by_code(command.code) is not None:
            raise ValidationError({"code": [f"Discount code {command.code.upper()} already exists"]})

        discount = Discount.create(
            code=command.code,
            method=command.method,
            value=command.value,
            currency_code=command.currency_code or default_currency_code(),
            discount_type=command.discount_type,
            min_order_value=command.min_order_value,
            max_discount_value=command.max_discount_value,
            product_ids=json.loads(command.product_ids or "[]"),
            start_date=command.start_date,
            end_date=command.end_date,
            usage_limit=command.usage_limit,
        )
        repo.add(discount)
        logger.info("Discount created", code=discount.code, method=discount.method, value=discount.value)
        return str(discount.id)

    @handle(DeactivateDiscount)
    def deactivate_discount(self, command):
        repo = current_domain.repository_for(Discount)
        discount = repo.find_by_code(command.code)
        if discount is None:
            raise ObjectNotFoundError(f"Discount code {command.code.upper()} not found")
        discount.deactivate()
        repo.add(discount)
