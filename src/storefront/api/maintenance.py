"""Operational endpoints."""

from fastapi import APIRouter, Header

from storefront.api.access import require_admin
from storefront.api.schemas import SweepResponse
from storefront.checkout.expiry import sweep_checkouts

maintenance_router = APIRouter(prefix="/maintenance", tags=["maintenance"])


@maintenance_router.post("/checkouts/sweep", response_model=SweepResponse)
async def sweep(force: bool = False, x_user_role: str | None = Header(default=None)) -> SweepResponse:
    """Run one checkout expiry sweep now.

    ``force`` also deletes abandoned checkouts that still hold contact or
    shipping details.
    """
    require_admin(x_user_role)
    return SweepResponse(**sweep_checkouts(force=force).to_dict())
