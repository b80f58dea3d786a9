from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from market.core.db import unit_of_work
from market.core.errors import AlreadySold, Forbidden, MarketError, PriceMismatch
from market.core.locks import listing_locks
from market.core.telemetry import tracer
from market.models.enums import AccountType, EntryType, ListingStatus
from market.models.listing import Listing
from market.models.purchase import Purchase
from market.services import templates
from market.services.audit import audit
from market.services.auth import Actor
from market.services.authorization import purchase_denial
from market.services.ledger import Ledger, SqlLedger
from market.services.listings import compare_and_set_status, lock_listing
from market.services.notifications import Notifier, notify_quietly
from market.services.shops import member_ids, role_in_shop

log = logging.getLogger(__name__)


def seller_account(listing: Listing) -> tuple[str, str]:
    """Shop-listed items settle into the shop's account, the rest into the owner's."""
    if listing.shop_id:
        return listing.shop_id, AccountType.shop.value
    return listing.owner_id, AccountType.user.value


async def purchase(
    db: AsyncSession,
    actor: Actor,
    listing_id: str,
    expected_price: Decimal,
    *,
    ledger: Ledger | None = None,
    notifier: Notifier | None = None,
    now: datetime | None = None,
) -> Purchase:
    """
    Buy a listing with the actor's balance.

    Checked in order once the listing is locked: the listing exists
    (NotFound), is not already sold (AlreadySold), still costs
    `expected_price` (PriceMismatch) and may be bought by this actor
    (Forbidden with SelfPurchase / NotActive / NotPurchasableCategory /
    InsufficientBalance).

    Status change, debit, credit and receipt commit together or not at all.
    Notifications go out after the commit and cannot undo it.
    """
    ledger = ledger or SqlLedger(db)
    expected = Decimal(expected_price)

    with tracer.start_as_current_span("market.purchase") as span:
        span.set_attribute("market.listing_id", listing_id)
        span.set_attribute("market.buyer_id", actor.user_id)
        try:
            async with listing_locks.hold(listing_id), unit_of_work(db):
                listing = await lock_listing(db, listing_id)
                if listing.status == ListingStatus.sold.value:
                    raise AlreadySold("Listing has already been sold", details={"listing_id": listing_id})
                if listing.price != expected:
                    raise PriceMismatch(
                        "Listing price changed",
                        details={"listing_id": listing_id, "expected": str(expected), "current": str(listing.price)},
                    )

                membership_role = (
                    await role_in_shop(db, actor.user_id, listing.shop_id) if listing.shop_id else None
                )
                balance = await ledger.balance_of(actor.user_id)
                denial = purchase_denial(actor, listing, membership_role=membership_role, balance=balance)
                if denial is not None:
                    raise Forbidden(denial)

                price = listing.price
                if not await compare_and_set_status(
                    db,
                    listing.id,
                    expected_status=ListingStatus.active.value,
                    expected_price=price,
                    new_status=ListingStatus.sold.value,
                ):
                    raise AlreadySold("Listing has already been sold", details={"listing_id": listing_id})

                account_id, account_type = seller_account(listing)
                await ledger.transfer(
                    actor.user_id,
                    account_id,
                    price,
                    debit_type=EntryType.purchase.value,
                    credit_type=EntryType.sale.value,
                    reference=listing.id,
                )

                receipt = Purchase(
                    listing_id=listing.id,
                    buyer_id=actor.user_id,
                    seller_account_id=account_id,
                    seller_account_type=account_type,
                    price=price,
                    purchased_at=now or datetime.now(timezone.utc),
                )
                db.add(receipt)
                await db.flush()
                await audit(
                    db, actor_user_id=actor.user_id, action="listing.purchased", target_type="listing",
                    target_id=listing.id,
                    detail={"purchase_id": receipt.id, "seller_account_id": account_id, "price": str(price)},
                )

                title = listing.title
                seller_recipients = await member_ids(db, listing.shop_id) if listing.shop_id else [listing.owner_id]
        except MarketError as e:
            span.set_attribute("market.error", e.code)
            log.warning(
                "purchase rejected: listing=%s buyer=%s code=%s reason=%s",
                listing_id, actor.user_id, e.code, e.reason,
            )
            raise

        span.set_attribute("market.purchase_id", receipt.id)

    log.info(
        "purchase committed: purchase=%s listing=%s buyer=%s seller=%s price=%s",
        receipt.id, listing_id, actor.user_id, account_id, price,
    )

    await notify_quietly(notifier, [actor.user_id], *templates.purchase_confirmed(title, price))
    await notify_quietly(notifier, seller_recipients, *templates.listing_sold(title, price))
    return receipt
