"""HTTP mapping for domain errors.

Validation is a bad request (400) and a missing object is not found (404).
A rejected state transition is a conflict (409). Provider failures surface as
a bad gateway (502) with a generic message; bad webhook signatures as 401.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import InvalidOperationError, ObjectNotFoundError, ValidationError

from storefront.payment.gateway.port import PaymentProviderError
from storefront.payment.submission import PAYMENT_FAILED_MESSAGE
from storefront.payment.webhook import WebhookSignatureError

logger = structlog.get_logger(__name__)


async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": exc.messages})


async def _not_found(request: Request, exc: ObjectNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": str(exc)})


async def _conflict(request: Request, exc: InvalidOperationError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"error": str(exc)})


async def _provider_error(request: Request, exc: PaymentProviderError) -> JSONResponse:
    logger.error("Payment provider error", path=request.url.path, provider=exc.provider, reason=exc.reason)
    return JSONResponse(status_code=502, content={"error": PAYMENT_FAILED_MESSAGE})


async def _bad_signature(request: Request, exc: WebhookSignatureError) -> JSONResponse:
    logger.warning("Webhook signature rejected", path=request.url.path, reason=str(exc))
    return JSONResponse(status_code=401, content={"error": "Invalid webhook signature"})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ValidationError, _validation_error)
    app.add_exception_handler(ObjectNotFoundError, _not_found)
    app.add_exception_handler(InvalidOperationError, _conflict)
    app.add_exception_handler(PaymentProviderError, _provider_error)
    app.add_exception_handler(WebhookSignatureError, _bad_signature)
