"""Domain events for the Checkout aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from storefront.domain import storefront


@storefront.event(part_of="Checkout")
class CheckoutItemAdded:
    """A variant was added to the checkout (or its quantity increased)."""

    __version__ = 1

    checkout_id = Identifier(required=True)
    sku = String(required=True, max_length=100)
    quantity = Integer(required=True)
    price = Integer(required=True)


@storefront.event(part_of="Checkout")
class CheckoutItemUpdated:
    """The quantity of a checkout line was changed."""

    __version__ = 1

    checkout_id = Identifier(required=True)
    sku = String(required=True, max_length=100)
    previous_quantity = Integer(required=True)
    new_quantity = Integer(required=True)


@storefront.event(part_of="Checkout")
class CheckoutItemRemoved:
    """A line was removed from the checkout."""

    __version__ = 1

    checkout_id = Identifier(required=True)
    sku = String(required=True, max_length=100)


@storefront.event(part_of="Checkout")
class CheckoutCleared:
    """All lines were removed from the checkout."""

    __version__ = 1

    checkout_id = Identifier(required=True)


@storefront.event(part_of="Checkout")
class CheckoutDiscountApplied:
    """A discount code was applied to the checkout."""

    __version__ = 1

    checkout_id = Identifier(required=True)
    discount_id = Identifier(required=True)
    code = String(required=True, max_length=50)
    amount = Integer(required=True)


@storefront.event(part_of="Checkout")
class CheckoutCurrencyChanged:
    """The checkout was repriced into another currency."""

    __version__ = 1

    checkout_id = Identifier(required=True)
    previous_currency = String(required=True, max_length=3)
    new_currency = String(required=True, max_length=3)


@storefront.event(part_of="Checkout")
class CheckoutCompleted:
    """The checkout was converted into an order."""

    __version__ = 1

    checkout_id = Identifier(required=True)
    order_id = Identifier(required=True)
    completed_at = DateTime(required=True)


@storefront.event(part_of="Checkout")
class CheckoutAbandoned:
    """An idle checkout was abandoned by the sweeper."""

    __version__ = 1

    checkout_id = Identifier(required=True)
    session_id = String(max_length=255)
    item_count = Integer(default=0)
    abandoned_at = DateTime(required=True)


@storefront.event(part_of="Checkout")
class CheckoutExpired:
    """An empty checkout passed its expiry time."""

    __version__ = 1

    checkout_id = Identifier(required=True)
    expired_at = DateTime(required=True)
