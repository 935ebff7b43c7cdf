"""Product variant, the slice of the catalogue that checkout depends on.

Catalogue CRUD lives elsewhere; this aggregate only carries what pricing and
order conversion need: the sellable SKU, its stock level, its base price and
any explicit per-currency prices.
"""

from datetime import UTC, datetime

from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Identifier, Integer, String

from storefront.domain import storefront


@storefront.entity(part_of="ProductVariant")
class VariantPrice:
    currency_code = String(required=True, max_length=3)
    price = Integer(required=True, min_value=0)


@storefront.aggregate
class ProductVariant:
    product_id = Identifier(required=True)
    category_id = Identifier()
    sku = String(required=True, max_length=100, unique=True)
    name = String(required=True, max_length=255)
    price = Integer(required=True, min_value=0)
    currency_code = String(required=True, max_length=3)
    weight = Float(default=0.0)
    stock = Integer(default=0, min_value=0)
    is_active = Boolean(default=True)
    prices = HasMany(VariantPrice)
    updated_at = DateTime()

    @classmethod
    def create(cls, product_id, sku, name, price, currency_code, stock=0, weight=0.0, category_id=None):
        return cls(
            product_id=product_id,
            category_id=category_id,
            sku=sku,
            name=name,
            price=price,
            currency_code=currency_code.upper(),
            stock=stock,
            weight=weight,
            is_active=True,
            updated_at=datetime.now(UTC),
        )

    def set_price(self, currency_code, price):
        """Set an explicit price for a currency, replacing any previous one."""
        code = currency_code.upper()
        if code == self.currency_code:
            self.price = price
        else:
            existing = next((p for p in self.prices if p.currency_code == code), None)
            if existing:
                existing.price = price
            else:
                self.add_prices(VariantPrice(currency_code=code, price=price))
        self.updated_at = datetime.now(UTC)

    def explicit_price(self, currency_code) -> int | None:
        code = (currency_code or "").upper()
        if code == self.currency_code:
            return self.price
        entry = next((p for p in self.prices if p.currency_code == code), None)
        return entry.price if entry else None

    def price_in(self, currency_code, converter) -> int:
        """Price in the given currency: explicit if set, converted otherwise."""
        explicit = self.explicit_price(currency_code)
        if explicit is not None:
            return explicit
        return converter.convert(self.price, self.currency_code, currency_code)

    def ensure_available(self, quantity):
        if not self.is_active:
            raise ValidationError({"sku": [f"Product {self.sku} is not available"]})
        if quantity > (self.stock or 0):
            raise ValidationError(
                {"quantity": [f"Insufficient stock for {self.sku}: requested {quantity}, available {self.stock or 0}"]}
            )

    def decrement_stock(self, quantity):
        self.ensure_available(quantity)
        self.stock = self.stock - quantity
        self.updated_at = datetime.now(UTC)


@storefront.repository(part_of=ProductVariant)
class ProductVariantRepository:
    def find_by_sku(self, sku: str) -> ProductVariant | None:
        if not sku:
            return None
        return self._dao.query.filter(sku=sku).all().first

    def get_by_sku(self, sku: str) -> ProductVariant:
        variant = self.find_by_sku(sku)
        if variant is None:
            raise ObjectNotFoundError(f"Product with SKU {sku} not found")
        return variant
