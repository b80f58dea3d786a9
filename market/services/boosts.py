from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from market.core.db import unit_of_work
from market.core.errors import ValidationError
from market.core.locks import listing_locks
from market.models.enums import EntryType
from market.models.listing import Listing
from market.services import pricing, templates
from market.services.audit import audit
from market.services.auth import Actor
from market.services.ledger import SqlLedger
from market.services.listings import _reject_sold, _require_edit, lock_listing
from market.services.notifications import Notifier, notify_quietly
from market.services.ranking import as_utc

log = logging.getLogger(__name__)


async def purchase_boost(
    db: AsyncSession,
    actor: Actor,
    listing_id: str,
    option: str,
    *,
    notifier: Notifier | None = None,
    now: datetime | None = None,
) -> Listing:
    """
    Pay for a promotion window. A running boost is extended from its current
    end rather than restarted.
    """
    if option not in pricing.BOOST_DURATIONS:
        raise ValidationError(f"Unknown boost option: {option}", details={"options": sorted(pricing.BOOST_DURATIONS)})
    cost = pricing.boost_cost(option)
    now = as_utc(now or datetime.now(timezone.utc))

    async with listing_locks.hold(listing_id), unit_of_work(db):
        listing = await lock_listing(db, listing_id)
        _reject_sold(listing)
        await _require_edit(db, actor, listing)

        if cost > 0:
            await SqlLedger(db).debit(
                actor.user_id, cost, entry_type=EntryType.boost.value, reference=listing.id,
                description=f"boost {option}",
            )

        start = now
        if listing.boosted_until is not None and as_utc(listing.boosted_until) > now:
            start = as_utc(listing.boosted_until)
        listing.boosted_until = start + pricing.BOOST_DURATIONS[option]
        listing.updated_by = actor.user_id

        await audit(
            db, actor_user_id=actor.user_id, action="listing.boosted", target_type="listing", target_id=listing.id,
            detail={"option": option, "cost": str(cost), "boosted_until": listing.boosted_until.isoformat()},
        )

    log.info("listing boosted: listing=%s option=%s until=%s", listing_id, option, listing.boosted_until)
    await notify_quietly(notifier, [actor.user_id], *templates.listing_boosted(listing.title, option))
    return listing
