from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from market.core.errors import ForbiddenReason
from market.models.enums import Category, ListingStatus, ShopRole
from market.models.listing import Listing
from market.services.auth import Actor
from market.services.ledger import SqlLedger
from market.services.shops import role_in_shop

MANAGING_ROLES = frozenset({ShopRole.owner.value, ShopRole.editor.value})

# listed publicly; out_of_stock shows as unavailable
PUBLIC_STATUSES = frozenset({ListingStatus.active.value, ListingStatus.out_of_stock.value})


@dataclass(frozen=True)
class Permissions:
    can_view: bool
    can_edit: bool
    can_transfer: bool
    can_purchase: bool
    purchase_denial: ForbiddenReason | None


def manages(actor: Actor, listing: Listing, membership_role: str | None) -> bool:
    """Owner of the listing, or owner/editor of the shop it is listed under."""
    if actor.user_id == listing.owner_id:
        return True
    return listing.shop_id is not None and membership_role in MANAGING_ROLES


def can_edit(actor: Actor, listing: Listing, membership_role: str | None) -> bool:
    return manages(actor, listing, membership_role) or actor.is_elevated


def can_view(actor: Actor, listing: Listing, membership_role: str | None) -> bool:
    if listing.status in PUBLIC_STATUSES:
        return True
    return can_edit(actor, listing, membership_role)


def can_transfer(
    actor: Actor,
    listing: Listing,
    membership_role: str | None,
    destination_role: str | None,
) -> bool:
    return can_edit(actor, listing, membership_role) and destination_role in MANAGING_ROLES


def purchase_denial(
    actor: Actor,
    listing: Listing,
    *,
    membership_role: str | None,
    balance: Decimal,
) -> ForbiddenReason | None:
    """First reason the actor may not buy the listing, or None when they may."""
    if actor.user_id == listing.owner_id:
        return ForbiddenReason.SELF_PURCHASE
    # any membership in the selling shop counts as managing it
    if listing.shop_id is not None and membership_role is not None:
        return ForbiddenReason.SELF_PURCHASE
    if listing.status != ListingStatus.active.value:
        return ForbiddenReason.NOT_ACTIVE
    if listing.category == Category.service.value:
        return ForbiddenReason.NOT_PURCHASABLE_CATEGORY
    if balance < listing.price:
        return ForbiddenReason.INSUFFICIENT_BALANCE
    return None


def resolve(
    actor: Actor,
    listing: Listing,
    *,
    membership_role: str | None,
    balance: Decimal,
    destination_role: str | None = None,
) -> Permissions:
    denial = purchase_denial(actor, listing, membership_role=membership_role, balance=balance)
    return Permissions(
        can_view=can_view(actor, listing, membership_role),
        can_edit=can_edit(actor, listing, membership_role),
        can_transfer=can_transfer(actor, listing, membership_role, destination_role),
        can_purchase=denial is None,
        purchase_denial=denial,
    )


async def load_permissions(
    db: AsyncSession,
    actor: Actor,
    listing: Listing,
    *,
    destination_shop_id: str | None = None,
) -> Permissions:
    """
    Read current membership and balance and resolve. The result is advisory:
    mutating operations resolve again under their own locks.
    """
    membership_role = await role_in_shop(db, actor.user_id, listing.shop_id) if listing.shop_id else None
    destination_role = (
        await role_in_shop(db, actor.user_id, destination_shop_id) if destination_shop_id else None
    )
    balance = await SqlLedger(db).balance_of(actor.user_id)
    return resolve(
        actor,
        listing,
        membership_role=membership_role,
        balance=balance,
        destination_role=destination_role,
    )
