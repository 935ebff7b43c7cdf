"""FastAPI routes for the buyer's checkout, bound to a session cookie.

Every route resolves the session's active checkout first (creating one when
the cookie is new or its checkout has moved on), runs one command and
returns the refreshed checkout.
"""

from uuid import uuid4

from fastapi import APIRouter, Header, Request, Response
from protean.exceptions import InvalidOperationError, ValidationError
from protean.utils.globals import current_domain

from storefront.api.schemas import (
    AddItemRequest,
    AddressSchema,
    ApplyDiscountRequest,
    ChangeCurrencyRequest,
    CheckoutResponse,
    CompleteCheckoutRequest,
    CompleteCheckoutResponse,
    CustomerSchema,
    DiscountAppliedResponse,
    SelectShippingRequest,
    ShippingOptionResponse,
    UpdateItemRequest,
    checkout_response,
    shipping_option_response,
)
from storefront.checkout.checkout import Checkout
from storefront.checkout.currency import ChangeCheckoutCurrency
from storefront.checkout.details import SelectShippingMethod, SetBillingAddress, SetCustomerDetails, SetShippingAddress
from storefront.checkout.discounts import ApplyDiscountCode, RemoveDiscountCode
from storefront.checkout.items import AddCheckoutItem, ClearCheckout, RemoveCheckoutItem, UpdateCheckoutItem
from storefront.checkout.session import ResolveCheckout, SetPaymentProvider
from storefront.config import setting_int, setting_str
from storefront.money.currency import CurrencyConverter
from storefront.order.conversion import ConvertCheckoutToOrder
from storefront.order.order import Order
from storefront.payment.gateway import get_gateways
from storefront.payment.gateway.port import PaymentRequest
from storefront.payment.submission import SubmitPayment, card_details_from, payment_method_from
from storefront.shipping.rate import available_shipping_options

checkout_router = APIRouter(prefix="/checkout", tags=["checkout"])

_OUTCOME_STATUS_CODES = {"succeeded": 201, "requires_action": 202, "failed": 402}


# ---------------------------------------------------------------------------
# Session helpers
# ---------------------------------------------------------------------------
def session_cookie_name() -> str:
    return setting_str("SESSION_COOKIE_NAME", "checkout_session_id") or "checkout_session_id"


def _session_id(request: Request, response: Response) -> str:
    name = session_cookie_name()
    session_id = request.cookies.get(name) or uuid4().hex
    response.set_cookie(
        name,
        session_id,
        max_age=setting_int("CHECKOUT_TTL_HOURS", 24) * 3600,
        httponly=True,
        samesite="lax",
    )
    return session_id


def _resolve(request: Request, response: Response, user_id: str | None) -> str:
    command = ResolveCheckout(session_id=_session_id(request, response), user_id=user_id or None)
    return current_domain.process(command, asynchronous=False)


def _load(checkout_id: str) -> CheckoutResponse:
    return checkout_response(current_domain.repository_for(Checkout).get(checkout_id))


def _address_fields(body: AddressSchema) -> dict:
    return {
        "street_address": body.street_address,
        "city": body.city,
        "state": body.state,
        "postal_code": body.postal_code,
        "country": body.country.upper(),
    }


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------
@checkout_router.get("", response_model=CheckoutResponse)
async def get_checkout(request: Request, response: Response, x_user_id: str | None = Header(default=None)):
    return _load(_resolve(request, response, x_user_id))


@checkout_router.post("/items", response_model=CheckoutResponse)
async def add_item(
    body: AddItemRequest, request: Request, response: Response, x_user_id: str | None = Header(default=None)
):
    checkout_id = _resolve(request, response, x_user_id)
    current_domain.process(
        AddCheckoutItem(checkout_id=checkout_id, sku=body.sku, quantity=body.quantity), asynchronous=False
    )
    return _load(checkout_id)


@checkout_router.put("/items/{sku}", response_model=CheckoutResponse)
async def update_item(
    sku: str, body: UpdateItemRequest, request: Request, response: Response, x_user_id: str | None = Header(default=None)
):
    checkout_id = _resolve(request, response, x_user_id)
    current_domain.process(UpdateCheckoutItem(checkout_id=checkout_id, sku=sku, quantity=body.quantity), asynchronous=False)
    return _load(checkout_id)


@checkout_router.delete("/items/{sku}", response_model=CheckoutResponse)
async def remove_item(sku: str, request: Request, response: Response, x_user_id: str | None = Header(default=None)):
    checkout_id = _resolve(request, response, x_user_id)
    current_domain.process(RemoveCheckoutItem(checkout_id=checkout_id, sku=sku), asynchronous=False)
    return _load(checkout_id)


@checkout_router.delete("", response_model=CheckoutResponse)
async def clear_checkout(request: Request, response: Response, x_user_id: str | None = Header(default=None)):
    checkout_id = _resolve(request, response, x_user_id)
    current_domain.process(ClearCheckout(checkout_id=checkout_id), asynchronous=False)
    return _load(checkout_id)


# ---------------------------------------------------------------------------
# Addresses and contact details
# ---------------------------------------------------------------------------
@checkout_router.put("/shipping-address", response_model=CheckoutResponse)
async def set_shipping_address(
    body: AddressSchema, request: Request, response: Response, x_user_id: str | None = Header(default=None)
):
    checkout_id = _resolve(request, response, x_user_id)
    current_domain.process(SetShippingAddress(checkout_id=checkout_id, **_address_fields(body)), asynchronous=False)
    return _load(checkout_id)


@checkout_router.put("/billing-address", response_model=CheckoutResponse)
async def set_billing_address(
    body: AddressSchema, request: Request, response: Response, x_user_id: str | None = Header(default=None)
):
    checkout_id = _resolve(request, response, x_user_id)
    current_domain.process(SetBillingAddress(checkout_id=checkout_id, **_address_fields(body)), asynchronous=False)
    return _load(checkout_id)


@checkout_router.put("/customer-details", response_model=CheckoutResponse)
async def set_customer_details(
    body: CustomerSchema, request: Request, response: Response, x_user_id: str | None = Header(default=None)
):
    checkout_id = _resolve(request, response, x_user_id)
    command = SetCustomerDetails(
        checkout_id=checkout_id,
        email=body.email,
        phone=body.phone,
        full_name=body.full_name,
    )
    current_domain.process(command, asynchronous=False)
    return _load(checkout_id)


# ---------------------------------------------------------------------------
# Shipping, discounts and currency
# ---------------------------------------------------------------------------
@checkout_router.get("/shipping-options", response_model=list[ShippingOptionResponse])
async def list_shipping_options(
    request: Request,
    response: Response,
    country: str | None = None,
    x_user_id: str | None = Header(default=None),
):
    checkout = current_domain.repository_for(Checkout).get(_resolve(request, response, x_user_id))
    destination = country or (checkout.shipping_address.country if checkout.shipping_address else None)
    if not destination:
        raise ValidationError({"country": ["A shipping address or country is required to list shipping options"]})

    lines = checkout.priced_lines()
    quotes = available_shipping_options(
        destination.upper(),
        sum(line.quantity * line.price for line in lines),
        sum(line.quantity * line.weight for line in lines),
        checkout.currency,
        CurrencyConverter(),
    )
    return [shipping_option_response(quote) for quote in quotes]


@checkout_router.put("/shipping-method", response_model=CheckoutResponse)
async def select_shipping_method(
    body: SelectShippingRequest, request: Request, response: Response, x_user_id: str | None = Header(default=None)
):
    checkout_id = _resolve(request, response, x_user_id)
    current_domain.process(
        SelectShippingMethod(checkout_id=checkout_id, shipping_rate_id=body.shipping_rate_id), asynchronous=False
    )
    return _load(checkout_id)


@checkout_router.post("/discount", response_model=DiscountAppliedResponse)
async def apply_discount(
    body: ApplyDiscountRequest, request: Request, response: Response, x_user_id: str | None = Header(default=None)
):
    checkout_id = _resolve(request, response, x_user_id)
    amount = current_domain.process(ApplyDiscountCode(checkout_id=checkout_id, code=body.code), asynchronous=False)
    return DiscountAppliedResponse(code=body.code.upper(), discount_amount=amount)


@checkout_router.delete("/discount", response_model=CheckoutResponse)
async def remove_discount(request: Request, response: Response, x_user_id: str | None = Header(default=None)):
    checkout_id = _resolve(request, response, x_user_id)
    current_domain.process(RemoveDiscountCode(checkout_id=checkout_id), asynchronous=False)
    return _load(checkout_id)


@checkout_router.put("/currency", response_model=CheckoutResponse)
async def change_currency(
    body: ChangeCurrencyRequest, request: Request, response: Response, x_user_id: str | None = Header(default=None)
):
    checkout_id = _resolve(request, response, x_user_id)
    current_domain.process(
        ChangeCheckoutCurrency(checkout_id=checkout_id, currency=body.currency.upper()), asynchronous=False
    )
    return _load(checkout_id)


# ---------------------------------------------------------------------------
# Completion
# ---------------------------------------------------------------------------
def _ensure_payable(checkout: Checkout, body: CompleteCheckoutRequest) -> None:
    """Reject a completion that could never be paid, before the order exists.

    The payment request the order would send is checked against the
    provider here, so a missing CVV, a malformed wallet phone number or a
    zero total leaves the checkout active instead of stranding a pending
    order.
    """
    if not checkout.has_items:
        raise InvalidOperationError("Cannot create an order from an empty checkout")
    if checkout.customer_details is None or not checkout.customer_details.email:
        raise ValidationError({"customer_email": ["Customer email is required to complete the checkout"]})

    gateway = get_gateways().get(body.provider)
    gateway.validate_request(
        PaymentRequest(
            order_id=str(checkout.id),
            order_number="",
            amount=checkout.final_amount,
            currency=checkout.currency,
            method=payment_method_from(body.payment_method),
            provider=gateway.provider,
            card_details=card_details_from(body),
            phone_number=body.phone_number,
            customer_email=checkout.customer_details.email,
        )
    )


@checkout_router.post("/complete", status_code=201, response_model=CompleteCheckoutResponse)
async def complete_checkout(
    body: CompleteCheckoutRequest, request: Request, response: Response, x_user_id: str | None = Header(default=None)
):
    """Convert the checkout into an order, then pay for it.

    Conversion and payment are separate units of work: a failed payment
    leaves a ``failed`` order behind rather than an active checkout.
    """
    checkout_id = _resolve(request, response, x_user_id)
    checkout = current_domain.repository_for(Checkout).get(checkout_id)
    _ensure_payable(checkout, body)

    current_domain.process(SetPaymentProvider(checkout_id=checkout_id, provider=body.provider), asynchronous=False)
    order_id = current_domain.process(ConvertCheckoutToOrder(checkout_id=checkout_id), asynchronous=False)

    outcome = current_domain.process(
        SubmitPayment(
            order_id=order_id,
            provider=body.provider,
            payment_method=body.payment_method,
            card_number=body.card_number,
            card_expiry_month=body.card_expiry_month,
            card_expiry_year=body.card_expiry_year,
            card_cvv=body.card_cvv,
            card_holder_name=body.card_holder_name,
            card_token=body.card_token,
            phone_number=body.phone_number,
        ),
        asynchronous=False,
    )
    order = current_domain.repository_for(Order).get(order_id)

    response.status_code = _OUTCOME_STATUS_CODES.get(outcome.status, 201)
    return CompleteCheckoutResponse(
        order_id=str(order.id),
        order_number=order.order_number,
        status=order.status,
        payment_status=order.payment_status,
        message=outcome.message,
        action_url=outcome.action_url,
    )
