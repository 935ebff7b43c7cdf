"""Checkout expiry: abandoning, expiring and deleting stale checkouts.

``sweep_checkouts`` is meant to run on a fixed interval (see
``src/sweeper.py``) and is also exposed through the maintenance API. It reads
and writes checkouts only through the repository and handles each checkout
with its own command, so one failing checkout never stops the pass.

A normal pass runs three steps in order:

1. active checkouts with items whose ``expires_at`` has passed and whose last
   activity is older than the abandonment threshold become ``abandoned``;
2. abandoned checkouts past the retention window (shorter for empty ones) and
   all expired checkouts are hard-deleted;
3. empty active checkouts whose ``expires_at`` has passed become ``expired``.

The force variant skips the age checks and deletes every abandoned or
expired checkout immediately.
"""

from dataclasses import dataclass
from datetime import timedelta

import structlog
from protean import handle
from protean.exceptions import InvalidOperationError, ObjectNotFoundError, ValidationError
from protean.fields import Boolean, DateTime, Identifier
from protean.utils.globals import current_domain

from storefront import clock
from storefront.checkout.checkout import Checkout, CheckoutStatus
from storefront.clock import naive_utc
from storefront.config import setting_int
from storefront.domain import storefront

logger = structlog.get_logger(__name__)


@storefront.command(part_of="Checkout")
class AbandonCheckout:
    checkout_id = Identifier(required=True)
    as_of = DateTime()


@storefront.command(part_of="Checkout")
class ExpireCheckout:
    checkout_id = Identifier(required=True)
    as_of = DateTime()


@storefront.command(part_of="Checkout")
class DeleteCheckout:
    """Hard-delete a checkout. Completed checkouts are kept for their orders."""

    checkout_id = Identifier(required=True)
    force = Boolean(default=False)


@storefront.command_handler(part_of=Checkout)
class CheckoutExpiryHandler:
    @handle(AbandonCheckout)
    def abandon_checkout(self, command):
        repo = current_domain.repository_for(Checkout)
        checkout = repo.get(command.checkout_id)
        checkout.mark_abandoned(at=command.as_of)
        repo.add(checkout)

    @handle(ExpireCheckout)
    def expire_checkout(self, command):
        repo = current_domain.repository_for(Checkout)
        checkout = repo.get(command.checkout_id)
        checkout.mark_expired(at=command.as_of)
        repo.add(checkout)

    @handle(DeleteCheckout)
    def delete_checkout(self, command):
        repo = current_domain.repository_for(Checkout)
        checkout = repo.get(command.checkout_id)

        status = CheckoutStatus(checkout.status)
        if status == CheckoutStatus.COMPLETED:
            raise InvalidOperationError("Completed checkouts cannot be deleted")
        if command.force and status == CheckoutStatus.ACTIVE:
            raise InvalidOperationError("Force deletion only applies to abandoned or expired checkouts")

        repo.remove(checkout)
        logger.info("Checkout deleted", checkout_id=str(checkout.id), status=checkout.status)


# ---------------------------------------------------------------------------
# Sweep
# ---------------------------------------------------------------------------
@dataclass
class SweepResult:
    abandoned: int = 0
    deleted: int = 0
    expired: int = 0

    @property
    def total(self) -> int:
        return self.abandoned + self.deleted + self.expired

    def to_dict(self) -> dict:
        return {"abandoned": self.abandoned, "deleted": self.deleted, "expired": self.expired}


def _dispatch(command, checkout, action) -> bool:
    try:
        current_domain.process(command, asynchronous=False)
        return True
    except (ValidationError, InvalidOperationError, ObjectNotFoundError) as exc:
        logger.warning(
            f"Failed to {action} checkout",
            checkout_id=str(checkout.id),
            status=checkout.status,
            error=str(exc),
        )
        return False


def _is_due_for_deletion(checkout, retention_cutoff, empty_cutoff) -> bool:
    if CheckoutStatus(checkout.status) == CheckoutStatus.EXPIRED:
        return True
    since = naive_utc(checkout.abandoned_at or checkout.last_activity_at)
    if since is None:
        return True
    if not checkout.has_items:
        return since <= empty_cutoff
    return since <= retention_cutoff


def sweep_checkouts(as_of=None, force=False) -> SweepResult:
    """Run one sweep pass and return the counts of affected checkouts."""
    as_of = as_of or clock.now()
    now = naive_utc(as_of)
    repo = current_domain.repository_for(Checkout)
    result = SweepResult()

    if force:
        for checkout in repo.find_non_active():
            if _dispatch(DeleteCheckout(checkout_id=str(checkout.id), force=True), checkout, "force-delete"):
                result.deleted += 1
        logger.info("Checkout force sweep complete", **result.to_dict())
        return result

    abandon_cutoff = now - timedelta(minutes=setting_int("ABANDON_AFTER_MINUTES", 15))
    retention_cutoff = now - timedelta(days=setting_int("ABANDONED_RETENTION_DAYS", 7))
    empty_cutoff = now - timedelta(hours=setting_int("EMPTY_RETENTION_HOURS", 24))

    logger.info(
        "Sweeping checkouts",
        as_of=now.isoformat(),
        abandon_cutoff=abandon_cutoff.isoformat(),
        retention_cutoff=retention_cutoff.isoformat(),
    )

    # 1. Abandon idle, expired checkouts that still hold items
    for checkout in repo.find_by_status(CheckoutStatus.ACTIVE):
        expires_at = naive_utc(checkout.expires_at)
        last_activity = naive_utc(checkout.last_activity_at)
        if not checkout.has_items or expires_at is None or expires_at >= now:
            continue
        if last_activity is not None and last_activity > abandon_cutoff:
            continue
        if _dispatch(AbandonCheckout(checkout_id=str(checkout.id), as_of=as_of), checkout, "abandon"):
            result.abandoned += 1

    # 2. Delete abandoned checkouts past retention and all expired ones
    for checkout in repo.find_non_active():
        if not _is_due_for_deletion(checkout, retention_cutoff, empty_cutoff):
            continue
        if _dispatch(DeleteCheckout(checkout_id=str(checkout.id)), checkout, "delete"):
            result.deleted += 1

    # 3. Expire empty checkouts past their expiry time
    for checkout in repo.find_by_status(CheckoutStatus.ACTIVE):
        expires_at = naive_utc(checkout.expires_at)
        if checkout.has_items or expires_at is None or expires_at >= now:
            continue
        if _dispatch(ExpireCheckout(checkout_id=str(checkout.id), as_of=as_of), checkout, "expire"):
            result.expired += 1

    logger.info("Checkout sweep complete", **result.to_dict())
    return result
