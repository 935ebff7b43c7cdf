"""Storefront FastAPI application.

Processes commands synchronously via HTTP. Every request runs inside the
storefront domain context and carries a request id in its log context.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

from uuid import uuid4

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV controls which config overlay is applied:
#   - "test"       -> event_processing = "sync"  (handlers fire in the UoW)
#   - "production" -> event_processing = "async" (handlers fire via Engine)
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from storefront.domain import storefront
from storefront.utils.logging import add_context, clear_context, get_logger

storefront.init()

logger = get_logger(__name__)

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Storefront API",
    description="Checkout, orders, payments and payment webhooks",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the storefront domain context and a request-scoped log context."""
    clear_context()
    add_context(request_id=request.headers.get("x-request-id") or uuid4().hex, path=request.url.path)
    try:
        with storefront.domain_context():
            return await call_next(request)
    finally:
        clear_context()


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from storefront.api import (  # noqa: E402
    checkout_router,
    maintenance_router,
    order_router,
    payment_router,
    register_error_handlers,
    webhook_router,
)

register_error_handlers(app)
app.include_router(checkout_router)
app.include_router(order_router)
app.include_router(payment_router)
app.include_router(webhook_router)
app.include_router(maintenance_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(content={"status": "ok", "domain": {"name": storefront.name}})
