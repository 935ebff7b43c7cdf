"""Clock used by the domain for timestamps and expiry decisions."""

from collections.abc import Callable
from datetime import UTC, datetime

_now: Callable[[], datetime] | None = None


def now() -> datetime:
    """Current time in UTC."""
    if _now is not None:
        return _now()
    return datetime.now(UTC)


def set_clock(func: Callable[[], datetime]) -> None:
    """Override the clock (useful for tests and replays)."""
    global _now
    _now = func


def reset_clock() -> None:
    global _now
    _now = None


def naive_utc(value: datetime | None) -> datetime | None:
    """Normalize a datetime to naive UTC so stored and computed values compare."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(UTC).replace(tzinfo=None)
    return value
