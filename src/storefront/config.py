"""Application settings.

Values come from the ``[custom]`` table of ``domain.toml``. An environment
variable of the same name takes precedence, so deployments can override any
setting without touching the file.
"""

import os

from storefront.domain import storefront

_TRUTHY = {"1", "true", "yes", "on"}


def _custom() -> dict:
    return storefront.config.get("custom", {}) or {}


def setting(name: str, default=None):
    """Return a raw setting value (environment first, then ``[custom]``)."""
    if name in os.environ:
        return os.environ[name]
    return _custom().get(name, default)


def setting_str(name: str, default: str = "") -> str:
    value = setting(name, default)
    return "" if value is None else str(value)


def setting_int(name: str, default: int) -> int:
    value = setting(name, default)
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def setting_float(name: str, default: float) -> float:
    value = setting(name, default)
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def setting_bool(name: str, default: bool = False) -> bool:
    value = setting(name, default)
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUTHY


def default_currency_code() -> str:
    return setting_str("DEFAULT_CURRENCY", "USD").upper()
