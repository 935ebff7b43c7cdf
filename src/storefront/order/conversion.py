"""Checkout-to-order conversion — command and handler.

The point of no return for prices and inventory. Everything happens inside
the command handler's unit of work: if any step raises, nothing is committed,
the checkout stays ``active`` and stock is unchanged.

Payment is deliberately not part of this step. An order can exist in
``pending`` even if the payment submitted afterwards fails.
"""

import structlog
from protean import handle
from protean.exceptions import InvalidOperationError, ValidationError
from protean.fields import Identifier
from protean.utils.globals import current_domain

from storefront import clock
from storefront.catalogue.variant import ProductVariant
from storefront.checkout.checkout import Checkout, CheckoutStatus
from storefront.domain import storefront
from storefront.money.currency import CurrencyConverter
from storefront.order.order import (
    Order,
    OrderAddress,
    OrderCustomer,
    OrderDiscount,
    OrderItem,
    OrderShipping,
    generate_order_number,
)
from storefront.pricing.discount import Discount

logger = structlog.get_logger(__name__)

_ORDER_NUMBER_ATTEMPTS = 5


@storefront.command(part_of="Order")
class ConvertCheckoutToOrder:
    """Snapshot an active checkout into a new pending Order."""

    checkout_id = Identifier(required=True)


def _unique_order_number(repo) -> str:
    for _ in range(_ORDER_NUMBER_ATTEMPTS):
        number = generate_order_number(clock.now())
        if repo.find_by_order_number(number) is None:
            return number
    raise InvalidOperationError("Could not generate a unique order number")


def _address(value) -> OrderAddress | None:
    if value is None:
        return None
    return OrderAddress(
        street_address=value.street_address,
        city=value.city,
        state=value.state,
        postal_code=value.postal_code,
        country=value.country,
    )


def _snapshot(checkout: Checkout, order_number: str) -> Order:
    items = [
        OrderItem(
            product_id=item.product_id,
            variant_id=item.variant_id,
            sku=item.sku,
            name=item.name,
            quantity=item.quantity,
            price=item.price,
            weight=item.weight,
            subtotal=item.quantity * item.price,
        )
        for item in checkout.items
    ]

    customer = None
    if checkout.customer_details:
        details = checkout.customer_details
        customer = OrderCustomer(email=details.email, phone=details.phone, full_name=details.full_name)

    shipping = None
    if checkout.shipping_option:
        option = checkout.shipping_option
        shipping = OrderShipping(
            shipping_rate_id=option.shipping_rate_id,
            name=option.name,
            estimated_delivery_days=option.estimated_delivery_days,
            cost=option.cost,
        )

    discount = None
    if checkout.applied_discount:
        applied = checkout.applied_discount
        discount = OrderDiscount(discount_id=applied.discount_id, code=applied.code, amount=applied.amount)

    return Order.place(
        order_number=order_number,
        checkout_id=str(checkout.id),
        checkout_session_id=checkout.session_id,
        user_id=checkout.user_id,
        currency=checkout.currency,
        items=items,
        total_amount=checkout.subtotal,
        shipping_cost=checkout.shipping_cost,
        discount_amount=checkout.discount_amount,
        final_amount=checkout.final_amount,
        total_weight=checkout.total_weight,
        payment_provider=checkout.payment_provider,
        shipping_address=_address(checkout.shipping_address),
        billing_address=_address(checkout.billing_address),
        customer=customer,
        shipping=shipping,
        applied_discount=discount,
    )


@storefront.command_handler(part_of=Order)
class ConvertCheckoutHandler:
    @handle(ConvertCheckoutToOrder)
    def convert_checkout(self, command):
        checkout_repo = current_domain.repository_for(Checkout)
        checkout = checkout_repo.get(command.checkout_id)

        # Re-read status inside this unit of work; the sweeper may have moved it
        if CheckoutStatus(checkout.status) != CheckoutStatus.ACTIVE:
            raise InvalidOperationError(f"Checkout is {checkout.status} and cannot be converted")
        if not checkout.has_items:
            raise InvalidOperationError("Cannot create an order from an empty checkout")

        CurrencyConverter().currency(checkout.currency)

        # Re-validate and decrement stock for every line
        variant_repo = current_domain.repository_for(ProductVariant)
        variants = []
        for item in checkout.items:
            variant = variant_repo.find_by_sku(item.sku)
            if variant is None:
                raise ValidationError({"sku": [f"Product {item.sku} is no longer available"]})
            variant.decrement_stock(item.quantity)
            variants.append(variant)

        discount = None
        if checkout.applied_discount:
            discount = current_domain.repository_for(Discount).find_by_code(checkout.applied_discount.code)
            if discount is None:
                raise ValidationError({"discount_code": ["Discount code is no longer available"]})
            discount.record_usage(clock.now())

        order_repo = current_domain.repository_for(Order)
        order = _snapshot(checkout, _unique_order_number(order_repo))
        checkout.mark_completed(order.id)

        for variant in variants:
            variant_repo.add(variant)
        if discount is not None:
            current_domain.repository_for(Discount).add(discount)
        order_repo.add(order)
        checkout_repo.add(checkout)

        logger.info(
            "Checkout converted to order",
            checkout_id=str(checkout.id),
            order_id=str(order.id),
            order_number=order.order_number,
            final_amount=order.final_amount,
            currency=order.currency,
        )
        return str(order.id)
