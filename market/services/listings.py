from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from market.core.db import unit_of_work
from market.core.errors import Forbidden, ForbiddenReason, InvalidTransition, NotFound, ValidationError
from market.core.locks import listing_locks
from market.models.enums import Category, EntryType, ListingStatus
from market.models.listing import Listing
from market.schemas.listing import (
    ItemAttributes,
    ListingAttributes,
    ListingCreate,
    ListingOut,
    ListingUpdate,
    RealEstateAttributes,
    ServiceAttributes,
    VehicleAttributes,
)
from market.services import pricing, templates
from market.services.audit import audit
from market.services.auth import Actor
from market.services.authorization import MANAGING_ROLES, PUBLIC_STATUSES, can_edit, can_transfer, can_view, manages
from market.services.ledger import SqlLedger
from market.services.notifications import Notifier, notify_quietly
from market.services.ranking import is_boosted, rank
from market.services.shops import resolve_shop_reference, role_in_shop

log = logging.getLogger(__name__)

# sold is absorbing and only settlement reaches it
_TRANSITIONS: dict[str, frozenset[str]] = {
    ListingStatus.active.value: frozenset({ListingStatus.passive.value, ListingStatus.out_of_stock.value}),
    ListingStatus.passive.value: frozenset({ListingStatus.active.value}),
    ListingStatus.out_of_stock.value: frozenset({ListingStatus.active.value}),
    ListingStatus.sold.value: frozenset(),
}


def attributes_of(listing: Listing) -> ListingAttributes:
    if listing.category == Category.vehicle.value:
        return VehicleAttributes(mileage=listing.mileage, top_speed=listing.top_speed)
    if listing.category == Category.real_estate.value:
        return RealEstateAttributes()
    if listing.category == Category.service.value:
        return ServiceAttributes()
    return ItemAttributes()


def _apply_attributes(listing: Listing, attrs: ListingAttributes) -> None:
    listing.category = attrs.category
    if isinstance(attrs, VehicleAttributes):
        if attrs.mileage < 0 or attrs.top_speed < 0:
            raise ValidationError("Vehicle mileage and top speed must be non-negative")
        listing.mileage = attrs.mileage
        listing.top_speed = attrs.top_speed
    else:
        listing.mileage = None
        listing.top_speed = None


def _check_price(price: Decimal) -> Decimal:
    if price < 0:
        raise ValidationError("Price must not be negative", details={"price": str(price)})
    return price


def listing_out(listing: Listing, now: datetime | None = None) -> ListingOut:
    now = now or datetime.now(timezone.utc)
    return ListingOut(
        id=listing.id,
        owner_id=listing.owner_id,
        shop_id=listing.shop_id,
        title=listing.title,
        description=listing.description,
        image_url=listing.image_url,
        price=listing.price,
        status=listing.status,
        view_count=listing.view_count,
        boosted_until=listing.boosted_until,
        is_boosted=is_boosted(listing, now),
        attributes=attributes_of(listing),
        created_at=listing.created_at,
        updated_at=listing.updated_at,
    )


async def get_listing(db: AsyncSession, listing_id: str) -> Listing:
    listing = await db.get(Listing, listing_id, populate_existing=True)
    if listing is None:
        raise NotFound("Listing not found", details={"listing_id": listing_id})
    return listing


async def lock_listing(db: AsyncSession, listing_id: str) -> Listing:
    """Load the listing row for update; the row lock is held until the transaction ends."""
    stmt = (
        select(Listing)
        .where(Listing.id == listing_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    listing = (await db.execute(stmt)).scalar_one_or_none()
    if listing is None:
        raise NotFound("Listing not found", details={"listing_id": listing_id})
    return listing


async def _membership(db: AsyncSession, actor: Actor, listing: Listing) -> str | None:
    return await role_in_shop(db, actor.user_id, listing.shop_id) if listing.shop_id else None


async def _require_edit(db: AsyncSession, actor: Actor, listing: Listing) -> str | None:
    role = await _membership(db, actor, listing)
    if not can_edit(actor, listing, role):
        raise Forbidden(ForbiddenReason.NOT_MANAGER, "Only the owner, shop members or moderators can change this listing")
    return role


def _reject_sold(listing: Listing) -> None:
    if listing.status == ListingStatus.sold.value:
        raise InvalidTransition("Listing is sold and can no longer change", details={"listing_id": listing.id})


async def query_listings(
    db: AsyncSession,
    *,
    category: str | None = None,
    status: str | None = None,
    owner_id: str | None = None,
    shop_id: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Listing]:
    stmt = select(Listing)
    if category:
        stmt = stmt.where(Listing.category == category)
    if status:
        stmt = stmt.where(Listing.status == status)
    if owner_id:
        stmt = stmt.where(Listing.owner_id == owner_id)
    if shop_id:
        stmt = stmt.where(Listing.shop_id == shop_id)
    stmt = stmt.order_by(Listing.created_at.desc(), Listing.id).limit(limit).offset(offset)
    return list((await db.execute(stmt)).scalars().all())


async def ranked_feed(
    db: AsyncSession,
    *,
    category: str | None = None,
    now: datetime | None = None,
    limit: int = 100,
) -> list[Listing]:
    """Publicly listed listings in display order."""
    stmt = select(Listing).where(Listing.status.in_(sorted(PUBLIC_STATUSES)))
    if category:
        stmt = stmt.where(Listing.category == category)
    stmt = stmt.order_by(Listing.created_at.desc(), Listing.id)
    rows = list((await db.execute(stmt)).scalars().all())
    return rank(rows, now or datetime.now(timezone.utc))[:limit]


async def compare_and_set_status(
    db: AsyncSession,
    listing_id: str,
    *,
    expected_status: str,
    expected_price: Decimal,
    new_status: str,
) -> bool:
    """Set the status only if status and price still hold the expected values."""
    result = await db.execute(
        update(Listing)
        .where(
            Listing.id == listing_id,
            Listing.status == expected_status,
            Listing.price == expected_price,
        )
        .values(status=new_status)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount == 1


async def create_listing(
    db: AsyncSession,
    actor: Actor,
    data: ListingCreate,
    *,
    notifier: Notifier | None = None,
) -> Listing:
    price = _check_price(data.price)
    fee = pricing.listing_fee()

    async with unit_of_work(db):
        shop_id = None
        if data.shop_id:
            shop = await resolve_shop_reference(db, data.shop_id)
            if await role_in_shop(db, actor.user_id, shop.id) not in MANAGING_ROLES:
                raise Forbidden(ForbiddenReason.NOT_SHOP_MEMBER, "Shop owner or editor role required to list under this shop")
            shop_id = shop.id

        listing = Listing(
            owner_id=actor.user_id,
            shop_id=shop_id,
            title=data.title.strip(),
            description=data.description,
            image_url=data.image_url,
            price=price,
            status=ListingStatus.active.value,
            view_count=0,
            created_by=actor.user_id,
            updated_by=actor.user_id,
        )
        _apply_attributes(listing, data.attributes)
        db.add(listing)
        await db.flush()

        if fee > 0:
            await SqlLedger(db).debit(
                actor.user_id, fee, entry_type=EntryType.listing_fee.value, reference=listing.id,
                description="listing fee",
            )
        await audit(
            db, actor_user_id=actor.user_id, action="listing.created", target_type="listing", target_id=listing.id,
            detail={"shop_id": shop_id, "category": listing.category, "price": str(price)},
        )

    log.info("listing created: listing=%s owner=%s shop=%s", listing.id, actor.user_id, shop_id)
    await notify_quietly(notifier, [actor.user_id], *templates.listing_created(listing.title))
    return listing


async def update_listing(db: AsyncSession, actor: Actor, listing_id: str, data: ListingUpdate) -> Listing:
    changes = data.model_dump(exclude_unset=True)
    if "price" in changes:
        if changes["price"] is None:
            raise ValidationError("Price is required")
        _check_price(changes["price"])
    if "title" in changes and changes["title"] is None:
        raise ValidationError("Title is required")

    async with listing_locks.hold(listing_id), unit_of_work(db):
        listing = await lock_listing(db, listing_id)
        _reject_sold(listing)
        await _require_edit(db, actor, listing)

        if data.attributes is not None:
            _apply_attributes(listing, data.attributes)
        elif "attributes" in changes:
            raise ValidationError("Attributes cannot be cleared")
        for field in ("title", "description", "image_url", "price"):
            if field in changes:
                setattr(listing, field, changes[field])
        listing.updated_by = actor.user_id

        await audit(
            db, actor_user_id=actor.user_id, action="listing.updated", target_type="listing", target_id=listing.id,
            detail={"fields": sorted(changes)},
        )
    return listing


async def change_status(db: AsyncSession, actor: Actor, listing_id: str, new_status: str) -> Listing:
    async with listing_locks.hold(listing_id), unit_of_work(db):
        listing = await lock_listing(db, listing_id)
        await _require_edit(db, actor, listing)

        old = listing.status
        if new_status == old and old != ListingStatus.sold.value:
            return listing
        if new_status not in _TRANSITIONS.get(old, frozenset()):
            raise InvalidTransition(
                f"Cannot change status from {old} to {new_status}",
                details={"listing_id": listing.id, "from": old, "to": new_status},
            )

        listing.status = new_status
        listing.updated_by = actor.user_id
        await audit(
            db, actor_user_id=actor.user_id, action="listing.status_changed", target_type="listing",
            target_id=listing.id, detail={"from": old, "to": new_status},
        )

    log.info("listing status: listing=%s %s -> %s by=%s", listing_id, old, new_status, actor.user_id)
    return listing


async def transfer_listing(db: AsyncSession, actor: Actor, listing_id: str, destination: str) -> Listing:
    """Move a listing under a shop the actor manages."""
    async with listing_locks.hold(listing_id), unit_of_work(db):
        shop = await resolve_shop_reference(db, destination)
        listing = await lock_listing(db, listing_id)
        _reject_sold(listing)

        role = await _membership(db, actor, listing)
        destination_role = await role_in_shop(db, actor.user_id, shop.id)
        if not can_edit(actor, listing, role):
            raise Forbidden(ForbiddenReason.NOT_MANAGER, "Only the owner, shop members or moderators can move this listing")
        if not can_transfer(actor, listing, role, destination_role):
            raise Forbidden(ForbiddenReason.NOT_SHOP_MEMBER, "Shop owner or editor role required on the destination shop")

        previous = listing.shop_id
        listing.shop_id = shop.id
        listing.updated_by = actor.user_id
        await audit(
            db, actor_user_id=actor.user_id, action="listing.transferred", target_type="listing",
            target_id=listing.id, detail={"from_shop_id": previous, "to_shop_id": shop.id},
        )

    log.info("listing transferred: listing=%s shop=%s by=%s", listing_id, shop.id, actor.user_id)
    return listing


async def delete_listing(db: AsyncSession, actor: Actor, listing_id: str) -> None:
    async with listing_locks.hold(listing_id), unit_of_work(db):
        listing = await lock_listing(db, listing_id)
        _reject_sold(listing)
        await _require_edit(db, actor, listing)

        await db.delete(listing)
        await audit(
            db, actor_user_id=actor.user_id, action="listing.deleted", target_type="listing", target_id=listing_id,
            detail={"owner_id": listing.owner_id, "shop_id": listing.shop_id},
        )

    log.info("listing deleted: listing=%s by=%s", listing_id, actor.user_id)


async def view_listing(db: AsyncSession, actor: Actor, listing_id: str, *, count_view: bool = True) -> Listing:
    """
    Fetch a listing for display. Hidden listings read as Forbidden to anyone
    who cannot manage them; views by non-managers bump view_count.
    """
    listing = await get_listing(db, listing_id)
    role = await _membership(db, actor, listing)
    if not can_view(actor, listing, role):
        raise Forbidden(ForbiddenReason.NOT_VISIBLE, "Listing is not visible")

    if count_view and not manages(actor, listing, role):
        async with unit_of_work(db):
            await db.execute(
                update(Listing)
                .where(Listing.id == listing_id)
                .values(view_count=Listing.view_count + 1, updated_at=Listing.updated_at)
                .execution_options(synchronize_session="fetch")
            )
        listing = await get_listing(db, listing_id)
    return listing
