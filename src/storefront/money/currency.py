"""Currency aggregate and the minor-unit converter.

Exchange rates are stored relative to a single default currency (normally
with a rate of 1.0). Converting an amount from currency A to B goes through the default:
``amount / rate_A * rate_B``, computed in ``Decimal`` and rounded half-up to
an integer number of minor units.

Rounding rule: a round trip A -> B -> A reproduces the original amount
exactly whenever ``rate_B >= rate_A`` (B's minor unit is not coarser than
A's), e.g. USD -> DKK -> USD.
"""

from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, String
from protean.utils.globals import current_domain

from storefront.domain import storefront


def convert_amount(amount: int, from_rate: float, to_rate: float) -> int:
    """Convert minor units between two currencies given their exchange rates."""
    if from_rate is None or to_rate is None or from_rate <= 0 or to_rate <= 0:
        raise ValidationError({"exchange_rate": ["Exchange rates must be greater than zero"]})
    if from_rate == to_rate:
        return int(amount)
    value = Decimal(int(amount)) / Decimal(str(from_rate)) * Decimal(str(to_rate))
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@storefront.aggregate
class Currency:
    code = String(required=True, max_length=3, unique=True)
    name = String(required=True, max_length=100)
    symbol = String(max_length=10)
    exchange_rate = Float(required=True)
    is_enabled = Boolean(default=True)
    is_default = Boolean(default=False)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def exchange_rate_must_be_positive(self):
        if self.exchange_rate is None or self.exchange_rate <= 0:
            raise ValidationError({"exchange_rate": ["Exchange rate must be greater than zero"]})

    @invariant.post
    def default_currency_must_stay_enabled(self):
        if self.is_default and not self.is_enabled:
            raise ValidationError({"is_enabled": ["The default currency cannot be disabled"]})

    @classmethod
    def create(cls, code, name, exchange_rate, symbol=None, is_enabled=True, is_default=False):
        now = datetime.now(UTC)
        return cls(
            code=code.upper(),
            name=name,
            symbol=symbol,
            exchange_rate=exchange_rate,
            is_enabled=True if is_default else is_enabled,
            is_default=is_default,
            created_at=now,
            updated_at=now,
        )

    def update_exchange_rate(self, exchange_rate):
        self.exchange_rate = exchange_rate
        self.updated_at = datetime.now(UTC)

    def enable(self):
        self.is_enabled = True
        self.updated_at = datetime.now(UTC)

    def disable(self):
        if self.is_default:
            raise ValidationError({"is_enabled": ["The default currency cannot be disabled"]})
        self.is_enabled = False
        self.updated_at = datetime.now(UTC)

    def convert_to(self, amount: int, target: "Currency") -> int:
        if self.code == target.code:
            return int(amount)
        return convert_amount(amount, self.exchange_rate, target.exchange_rate)


@storefront.repository(part_of=Currency)
class CurrencyRepository:
    def find_by_code(self, code: str) -> Currency | None:
        if not code:
            return None
        return self._dao.query.filter(code=code.upper()).all().first

    def find_default(self) -> Currency | None:
        return self._dao.query.filter(is_default=True).all().first

    def find_enabled(self) -> list[Currency]:
        return self._dao.query.filter(is_enabled=True).order_by("code").all().items


class CurrencyConverter:
    """Converts minor-unit amounts using the stored exchange rates."""

    def __init__(self, repository=None):
        self._repository = repository or current_domain.repository_for(Currency)
        self._cache: dict[str, Currency] = {}

    def currency(self, code: str) -> Currency:
        """Return an enabled currency or reject the code."""
        code = (code or "").upper()
        if code not in self._cache:
            currency = self._repository.find_by_code(code)
            if currency is None or not currency.is_enabled:
                raise ValidationError({"currency": [f"Currency {code or '<empty>'} is not supported"]})
            self._cache[code] = currency
        return self._cache[code]

    def is_supported(self, code: str) -> bool:
        try:
            self.currency(code)
        except ValidationError:
            return False
        return True

    def convert(self, amount: int, from_code: str, to_code: str) -> int:
        if (from_code or "").upper() == (to_code or "").upper():
            return int(amount)
        return self.currency(from_code).convert_to(amount, self.currency(to_code))
