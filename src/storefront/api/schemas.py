"""Pydantic request/response schemas for the Storefront API.

These are external contracts (anti-corruption layer), separate from
internal Protean commands and aggregates.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class AddressSchema(BaseModel):
    street_address: str
    city: str
    state: str | None = None
    postal_code: str
    country: str = Field(min_length=2, max_length=2)


class CustomerSchema(BaseModel):
    email: str
    phone: str | None = None
    full_name: str | None = None


class StatusResponse(BaseModel):
    status: str = "ok"


# ---------------------------------------------------------------------------
# Checkout Request Schemas
# ---------------------------------------------------------------------------
class AddItemRequest(BaseModel):
    sku: str
    quantity: int = Field(ge=1, default=1)

    model_config = {"json_schema_extra": {"examples": [{"sku": "TSHIRT-BLK-M", "quantity": 2}]}}


class UpdateItemRequest(BaseModel):
    quantity: int = Field(ge=1)


class SelectShippingRequest(BaseModel):
    shipping_rate_id: str


class ApplyDiscountRequest(BaseModel):
    code: str


class ChangeCurrencyRequest(BaseModel):
    currency: str = Field(min_length=3, max_length=3)


class CompleteCheckoutRequest(BaseModel):
    provider: str
    payment_method: str
    card_number: str | None = None
    card_expiry_month: int | None = None
    card_expiry_year: int | None = None
    card_cvv: str | None = None
    card_holder_name: str | None = None
    card_token: str | None = None
    phone_number: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "provider": "stripe",
                    "payment_method": "credit_card",
                    "card_number": "4242424242424242",
                    "card_expiry_month": 12,
                    "card_expiry_year": 2030,
                    "card_cvv": "123",
                },
                {"provider": "mobilepay", "payment_method": "wallet", "phone_number": "+4512345678"},
            ]
        }
    }


# ---------------------------------------------------------------------------
# Checkout Response Schemas
# ---------------------------------------------------------------------------
class CheckoutItemResponse(BaseModel):
    product_id: str
    variant_id: str
    sku: str
    name: str
    quantity: int
    price: int
    weight: float
    subtotal: int


class ShippingOptionResponse(BaseModel):
    shipping_rate_id: str
    name: str
    description: str | None = None
    estimated_delivery_days: int | None = None
    cost: int
    free_shipping: bool = False


class AppliedDiscountResponse(BaseModel):
    discount_id: str
    code: str
    amount: int


class CheckoutResponse(BaseModel):
    id: str
    session_id: str
    user_id: str | None = None
    status: str
    currency: str
    items: list[CheckoutItemResponse]
    shipping_address: AddressSchema | None = None
    billing_address: AddressSchema | None = None
    customer_details: CustomerSchema | None = None
    shipping_option: ShippingOptionResponse | None = None
    applied_discount: AppliedDiscountResponse | None = None
    payment_provider: str | None = None
    subtotal: int
    shipping_cost: int
    discount_amount: int
    final_amount: int
    total_weight: float
    last_activity_at: datetime | None = None
    expires_at: datetime | None = None


class CompleteCheckoutResponse(BaseModel):
    order_id: str
    order_number: str
    status: str
    payment_status: str
    message: str = ""
    action_url: str | None = None


class DiscountAppliedResponse(BaseModel):
    code: str
    discount_amount: int


# ---------------------------------------------------------------------------
# Order Schemas
# ---------------------------------------------------------------------------
class ShipOrderRequest(BaseModel):
    tracking_number: str | None = None


class OrderItemResponse(BaseModel):
    sku: str
    name: str
    quantity: int
    price: int
    subtotal: int


class OrderResponse(BaseModel):
    id: str
    order_number: str
    status: str
    payment_status: str
    currency: str
    items: list[OrderItemResponse]
    total_amount: int
    shipping_cost: int
    discount_amount: int
    final_amount: int
    payment_provider: str | None = None
    payment_id: str | None = None
    tracking_number: str | None = None
    shipping_address: AddressSchema | None = None
    customer: CustomerSchema | None = None
    created_at: datetime | None = None


# ---------------------------------------------------------------------------
# Payment Schemas
# ---------------------------------------------------------------------------
class AmountRequest(BaseModel):
    amount: int | None = Field(default=None, gt=0)


class ForceApproveRequest(BaseModel):
    phone_number: str


class ProviderResponse(BaseModel):
    type: str
    name: str
    description: str
    methods: list[str]
    currencies: list[str]
    enabled: bool
    icon_url: str | None = None


class PaymentOperationResponse(BaseModel):
    order_id: str
    payment_id: str
    operation: str
    success: bool
    amount: int
    payment_status: str | None = None


class WebhookResponse(BaseModel):
    status: str


class SweepResponse(BaseModel):
    abandoned: int
    deleted: int
    expired: int


# ---------------------------------------------------------------------------
# Aggregate -> response mapping
# ---------------------------------------------------------------------------
def _address(value) -> AddressSchema | None:
    if value is None:
        return None
    return AddressSchema(
        street_address=value.street_address,
        city=value.city,
        state=value.state,
        postal_code=value.postal_code,
        country=value.country,
    )


def _customer(value) -> CustomerSchema | None:
    if value is None:
        return None
    return CustomerSchema(email=value.email, phone=value.phone, full_name=value.full_name)


def checkout_response(checkout) -> CheckoutResponse:
    option = checkout.shipping_option
    discount = checkout.applied_discount
    return CheckoutResponse(
        id=str(checkout.id),
        session_id=checkout.session_id,
        user_id=str(checkout.user_id) if checkout.user_id else None,
        status=checkout.status,
        currency=checkout.currency,
        items=[
            CheckoutItemResponse(
                product_id=str(item.product_id),
                variant_id=str(item.variant_id),
                sku=item.sku,
                name=item.name,
                quantity=item.quantity,
                price=item.price,
                weight=item.weight or 0.0,
                subtotal=item.subtotal,
            )
            for item in checkout.items
        ],
        shipping_address=_address(checkout.shipping_address),
        billing_address=_address(checkout.billing_address),
        customer_details=_customer(checkout.customer_details),
        shipping_option=shipping_option_response(option) if option else None,
        applied_discount=(
            AppliedDiscountResponse(discount_id=str(discount.discount_id), code=discount.code, amount=discount.amount)
            if discount
            else None
        ),
        payment_provider=checkout.payment_provider,
        subtotal=checkout.subtotal,
        shipping_cost=checkout.shipping_cost,
        discount_amount=checkout.discount_amount,
        final_amount=checkout.final_amount,
        total_weight=checkout.total_weight or 0.0,
        last_activity_at=checkout.last_activity_at,
        expires_at=checkout.expires_at,
    )


def shipping_option_response(option) -> ShippingOptionResponse:
    return ShippingOptionResponse(
        shipping_rate_id=str(option.shipping_rate_id),
        name=option.name,
        description=option.description,
        estimated_delivery_days=option.estimated_delivery_days,
        cost=option.cost,
        free_shipping=bool(option.free_shipping),
    )


def order_response(order) -> OrderResponse:
    return OrderResponse(
        id=str(order.id),
        order_number=order.order_number,
        status=order.status,
        payment_status=order.payment_status,
        currency=order.currency,
        items=[
            OrderItemResponse(
                sku=item.sku,
                name=item.name,
                quantity=item.quantity,
                price=item.price,
                subtotal=item.subtotal,
            )
            for item in order.items
        ],
        total_amount=order.total_amount,
        shipping_cost=order.shipping_cost,
        discount_amount=order.discount_amount,
        final_amount=order.final_amount,
        payment_provider=order.payment_provider,
        payment_id=order.payment_id,
        tracking_number=order.tracking_number,
        shipping_address=_address(order.shipping_address),
        customer=_customer(order.customer),
        created_at=order.created_at,
    )
