"""FastAPI routes for payment providers, privileged payment operations and
provider webhooks."""

from fastapi import APIRouter, Header, Request

from storefront.api.access import require_admin
from storefront.api.schemas import (
    AmountRequest,
    ForceApproveRequest,
    PaymentOperationResponse,
    ProviderResponse,
    WebhookResponse,
)
from storefront.payment.gateway import available_providers
from storefront.payment.operations import cancel_payment, capture_payment, force_approve_payment, refund_payment
from storefront.payment.providers import mobilepay, stripe

# ---------------------------------------------------------------------------
# Payment Router
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.get("/providers", response_model=list[ProviderResponse])
async def list_providers(currency: str | None = None) -> list[ProviderResponse]:
    """Enabled providers, narrowed to those that accept ``currency`` when given."""
    return [ProviderResponse(**info.to_dict()) for info in available_providers(currency.upper() if currency else None)]


@payment_router.post("/{payment_id}/capture", response_model=PaymentOperationResponse)
async def capture(
    payment_id: str, body: AmountRequest | None = None, x_user_role: str | None = Header(default=None)
) -> PaymentOperationResponse:
    require_admin(x_user_role)
    outcome = capture_payment(payment_id, body.amount if body else None)
    return PaymentOperationResponse(**outcome.to_dict())


@payment_router.post("/{payment_id}/cancel", response_model=PaymentOperationResponse)
async def cancel(payment_id: str, x_user_role: str | None = Header(default=None)) -> PaymentOperationResponse:
    require_admin(x_user_role)
    return PaymentOperationResponse(**cancel_payment(payment_id).to_dict())


@payment_router.post("/{payment_id}/refund", response_model=PaymentOperationResponse)
async def refund(
    payment_id: str, body: AmountRequest | None = None, x_user_role: str | None = Header(default=None)
) -> PaymentOperationResponse:
    require_admin(x_user_role)
    outcome = refund_payment(payment_id, body.amount if body else None)
    return PaymentOperationResponse(**outcome.to_dict())


@payment_router.post("/{payment_id}/force-approve", response_model=PaymentOperationResponse)
async def force_approve(
    payment_id: str, body: ForceApproveRequest, x_user_role: str | None = Header(default=None)
) -> PaymentOperationResponse:
    """Approve a pending test-mode wallet payment without a phone in hand."""
    require_admin(x_user_role)
    outcome = force_approve_payment(payment_id, body.phone_number)
    return PaymentOperationResponse(**outcome.to_dict())


# ---------------------------------------------------------------------------
# Webhook Router
# ---------------------------------------------------------------------------
webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@webhook_router.post("/stripe", response_model=WebhookResponse)
async def stripe_webhook(request: Request, stripe_signature: str | None = Header(default=None)) -> WebhookResponse:
    payload = await request.body()
    outcome = stripe.handle_webhook(payload, stripe_signature)
    return WebhookResponse(status=outcome.value)


@webhook_router.post("/mobilepay", response_model=WebhookResponse)
async def mobilepay_webhook(request: Request) -> WebhookResponse:
    payload = await request.body()
    path = request.url.path
    if request.url.query:
        path = f"{path}?{request.url.query}"
    outcome = mobilepay.handle_webhook(payload, path, request.headers)
    return WebhookResponse(status=outcome.value)
