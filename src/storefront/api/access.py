"""Caller identity as asserted by the upstream gateway headers."""

from fastapi import HTTPException

ADMIN_ROLE = "admin"


def is_admin(role: str | None) -> bool:
    return (role or "").strip().lower() == ADMIN_ROLE


def require_admin(role: str | None) -> None:
    if not is_admin(role):
        raise HTTPException(status_code=403, detail="Administrator role required")
