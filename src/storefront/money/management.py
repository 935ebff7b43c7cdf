"""Currency management — commands and handler."""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Boolean, Float, String
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.money.currency import Currency

logger = structlog.get_logger(__name__)


@storefront.command(part_of="Currency")
class CreateCurrency:
    code = String(required=True, max_length=3)
    name = String(required=True, max_length=100)
    symbol = String(max_length=10)
    exchange_rate = Float(required=True)
    is_enabled = Boolean(default=True)
    is_default = Boolean(default=False)


@storefront.command(part_of="Currency")
class UpdateExchangeRate:
    code = String(required=True, max_length=3)
    exchange_rate = Float(required=True)


@storefront.command(part_of="Currency")
class SetDefaultCurrency:
    code = String(required=True, max_length=3)


@storefront.command(part_of="Currency")
class EnableCurrency:
    code = String(required=True, max_length=3)


@storefront.command(part_of="Currency")
class DisableCurrency:
    code = String(required=True, max_length=3)


def _get_currency(repo, code):
    currency = repo.find_by_code(code)
    if currency is None:
        raise ObjectNotFoundError(f"Currency {code.upper()} not found")
    return currency


@storefront.command_handler(part_of=Currency)
class CurrencyManagementHandler:
    @handle(CreateCurrency)
    def create_currency(self, command):
        repo = current_domain.repository_for(Currency)
        if repo.find_by_code(command.code) is not None:
            raise ValidationError({"code": [f"Currency {command.code.upper()} already exists"]})

        if command.is_default:
            previous = repo.find_default()
            if previous is not None:
                previous.is_default = False
                repo.add(previous)

        currency = Currency.create(
            code=command.code,
            name=command.name,
            symbol=command.symbol,
            exchange_rate=command.exchange_rate,
            is_enabled=command.is_enabled,
            is_default=command.is_default,
        )
        repo.add(currency)
        return currency.code

    @handle(UpdateExchangeRate)
    def update_exchange_rate(self, command):
        repo = current_domain.repository_for(Currency)
        currency = _get_currency(repo, command.code)
        currency.update_exchange_rate(command.exchange_rate)
        repo.add(currency)
        logger.info("Exchange rate updated", code=currency.code, exchange_rate=command.exchange_rate)

    @handle(SetDefaultCurrency)
    def set_default_currency(self, command):
        repo = current_domain.repository_for(Currency)
        currency = _get_currency(repo, command.code)
        if currency.is_default:
            return currency.code
        if not currency.is_enabled:
            raise ValidationError({"code": ["A disabled currency cannot become the default"]})

        previous = repo.find_default()
        if previous is not None:
            previous.is_default = False
            repo.add(previous)

        currency.is_default = True
        repo.add(currency)
        logger.info(
            "Default currency changed",
            code=currency.code,
            previous=previous.code if previous else None,
        )
        return currency.code

    @handle(EnableCurrency)
    def enable_currency(self, command):
        repo = current_domain.repository_for(Currency)
        currency = _get_currency(repo, command.code)
        currency.enable()
        repo.add(currency)

    @handle(DisableCurrency)
    def disable_currency(self, command):
        repo = current_domain.repository_for(Currency)
        currency = _get_currency(repo, command.code)
        currency.disable()
        repo.add(currency)


def list_enabled_currencies() -> list[Currency]:
    return current_domain.repository_for(Currency).find_enabled()


def default_currency() -> Currency | None:
    return current_domain.repository_for(Currency).find_default()
