from __future__ import annotations

import logging
from contextlib import AsyncExitStack
from decimal import Decimal

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from market.core.db import unit_of_work
from market.core.errors import Forbidden, ForbiddenReason, InvalidTransition, NotFound, ValidationError
from market.core.ids import is_well_formed_id
from market.core.locks import listing_locks, shop_locks
from market.models.enums import AccountType, EntryType, ShopRole
from market.models.ledger import Balance
from market.models.listing import Listing
from market.models.shop import Shop
from market.models.shop_member import ShopMember
from market.models.user import User
from market.schemas.shop import ShopCreate, ShopUpdate
from market.services import templates
from market.services.audit import audit
from market.services.auth import Actor
from market.services.ledger import SqlLedger
from market.services.notifications import Notifier, notify_quietly

log = logging.getLogger(__name__)

_MANAGING = (ShopRole.owner.value, ShopRole.editor.value)


async def role_in_shop(db: AsyncSession, user_id: str, shop_id: str) -> str | None:
    stmt = select(ShopMember.role).where(ShopMember.shop_id == shop_id, ShopMember.user_id == user_id)
    return (await db.execute(stmt)).scalar_one_or_none()


async def memberships_of(db: AsyncSession, user_id: str) -> dict[str, str]:
    """shop_id -> role for every shop the user belongs to."""
    stmt = select(ShopMember.shop_id, ShopMember.role).where(ShopMember.user_id == user_id)
    return {shop_id: role for shop_id, role in (await db.execute(stmt)).all()}


async def shops_managed_by(db: AsyncSession, user_id: str) -> list[Shop]:
    stmt = (
        select(Shop)
        .join(ShopMember, ShopMember.shop_id == Shop.id)
        .where(ShopMember.user_id == user_id, ShopMember.role.in_(_MANAGING))
        .order_by(Shop.created_at.asc(), Shop.id)
    )
    return list((await db.execute(stmt)).scalars().all())


async def get_shop(db: AsyncSession, shop_id: str) -> Shop:
    shop = await db.get(Shop, shop_id)
    if shop is None:
        raise NotFound("Shop not found", details={"shop_id": shop_id})
    return shop


async def resolve_shop_reference(db: AsyncSession, raw: str) -> Shop:
    """
    A malformed id and an id that names no shop are different failures:
    the first is a ValidationError, the second NotFound.
    """
    ref = (raw or "").strip()
    if not is_well_formed_id(ref, "shp"):
        raise ValidationError("Malformed shop id", details={"shop_id": raw})
    return await get_shop(db, ref)


async def _locked_shop(db: AsyncSession, shop_id: str) -> Shop:
    stmt = (
        select(Shop)
        .where(Shop.id == shop_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    shop = (await db.execute(stmt)).scalar_one_or_none()
    if shop is None:
        raise NotFound("Shop not found", details={"shop_id": shop_id})
    return shop


async def _require_manager(db: AsyncSession, actor: Actor, shop_id: str) -> str:
    role = await role_in_shop(db, actor.user_id, shop_id)
    if role not in _MANAGING:
        raise Forbidden(ForbiddenReason.NOT_SHOP_MEMBER, "Shop owner or editor role required")
    return role


async def member_ids(db: AsyncSession, shop_id: str) -> list[str]:
    stmt = select(ShopMember.user_id).where(ShopMember.shop_id == shop_id).order_by(ShopMember.created_at, ShopMember.id)
    return list((await db.execute(stmt)).scalars().all())


async def create_shop(
    db: AsyncSession,
    actor: Actor,
    data: ShopCreate,
    *,
    notifier: Notifier | None = None,
) -> Shop:
    name = data.name.strip()
    if len(name) < 3:
        raise ValidationError("Shop name must be at least 3 characters", details={"name": data.name})

    async with unit_of_work(db):
        shop = Shop(
            name=name,
            description=data.description,
            logo_url=data.logo_url,
            phone=data.phone,
            created_by=actor.user_id,
            updated_by=actor.user_id,
        )
        db.add(shop)
        await db.flush()

        # owner membership and settlement account are created with the shop, never after
        db.add(ShopMember(shop_id=shop.id, user_id=actor.user_id, role=ShopRole.owner.value, created_by=actor.user_id))
        await SqlLedger(db).open_account(shop.id, AccountType.shop.value)
        await audit(db, actor_user_id=actor.user_id, action="shop.created", target_type="shop", target_id=shop.id)

    log.info("shop created: shop=%s owner=%s", shop.id, actor.user_id)
    await notify_quietly(notifier, [actor.user_id], *templates.shop_created(shop.name))
    return shop


async def update_shop(db: AsyncSession, actor: Actor, shop_id: str, data: ShopUpdate) -> Shop:
    async with shop_locks.hold(shop_id), unit_of_work(db):
        shop = await _locked_shop(db, shop_id)
        if not actor.is_elevated:
            await _require_manager(db, actor, shop_id)

        changes = data.model_dump(exclude_unset=True)
        if "name" in changes:
            if changes["name"] is None or len(changes["name"].strip()) < 3:
                raise ValidationError("Shop name must be at least 3 characters", details={"name": changes["name"]})
            changes["name"] = changes["name"].strip()
        for field, value in changes.items():
            setattr(shop, field, value)
        shop.updated_by = actor.user_id

        await audit(
            db, actor_user_id=actor.user_id, action="shop.updated", target_type="shop", target_id=shop.id,
            detail={"fields": sorted(changes)},
        )
    return shop


async def _shop_listing_ids(db: AsyncSession, shop_id: str) -> list[str]:
    stmt = select(Listing.id).where(Listing.shop_id == shop_id).order_by(Listing.id)
    # committed right away so no read transaction stays open while waiting on listing locks
    async with unit_of_work(db):
        return list((await db.execute(stmt)).scalars().all())


async def _locked_account(db: AsyncSession, shop_id: str) -> Balance | None:
    stmt = (
        select(Balance)
        .where(Balance.account_id == shop_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def delete_shop(db: AsyncSession, actor: Actor, shop_id: str) -> None:
    """
    Listings of the shop are locked before they are detached, so a purchase
    that already holds one settles (into the shop account) before the
    balance check runs, and one that starts later sees the owner as seller.
    """
    async with shop_locks.hold(shop_id), AsyncExitStack() as held:
        for listing_id in await _shop_listing_ids(db, shop_id):
            await held.enter_async_context(listing_locks.hold(listing_id))

        async with unit_of_work(db):
            await _locked_shop(db, shop_id)
            role = await role_in_shop(db, actor.user_id, shop_id)
            if role != ShopRole.owner.value and not actor.is_elevated:
                raise Forbidden(ForbiddenReason.NOT_SHOP_OWNER, "Only the shop owner can delete the shop")

            await db.execute(select(Listing.id).where(Listing.shop_id == shop_id).with_for_update())
            account = await _locked_account(db, shop_id)
            balance = Decimal("0") if account is None else Decimal(account.balance)
            if balance > 0:
                raise InvalidTransition(
                    "Shop settlement account still holds a balance",
                    details={"shop_id": shop_id, "balance": str(balance)},
                )

            # listings fall back to their owner as seller
            await db.execute(
                update(Listing)
                .where(Listing.shop_id == shop_id)
                .values(shop_id=None)
                .execution_options(synchronize_session="fetch")
            )
            await db.execute(delete(ShopMember).where(ShopMember.shop_id == shop_id))
            closed = await db.execute(
                delete(Balance)
                .where(Balance.account_id == shop_id, Balance.balance == 0)
                .execution_options(synchronize_session="evaluate")
            )
            if account is not None and closed.rowcount != 1:
                raise InvalidTransition(
                    "Shop settlement account changed while deleting", details={"shop_id": shop_id}
                )
            await db.execute(delete(Shop).where(Shop.id == shop_id))
            await audit(db, actor_user_id=actor.user_id, action="shop.deleted", target_type="shop", target_id=shop_id)

    log.info("shop deleted: shop=%s by=%s", shop_id, actor.user_id)


async def withdraw_shop_balance(
    db: AsyncSession,
    actor: Actor,
    shop_id: str,
    amount: Decimal | None = None,
    *,
    notifier: Notifier | None = None,
) -> Decimal:
    """
    Pay shop earnings out to the owner's personal balance. Without an amount
    the whole balance is withdrawn. Returns the amount moved.
    """
    async with shop_locks.hold(shop_id), unit_of_work(db):
        shop = await _locked_shop(db, shop_id)
        if await role_in_shop(db, actor.user_id, shop_id) != ShopRole.owner.value:
            raise Forbidden(ForbiddenReason.NOT_SHOP_OWNER, "Only the shop owner can withdraw shop earnings")

        ledger = SqlLedger(db)
        available = await ledger.balance_of(shop_id)
        if amount is None:
            amount = available
        if amount <= 0:
            raise ValidationError(
                "Withdrawal amount must be positive",
                details={"amount": str(amount), "available": str(available)},
            )

        await ledger.transfer(
            shop_id,
            actor.user_id,
            amount,
            debit_type=EntryType.withdrawal.value,
            credit_type=EntryType.withdrawal.value,
            reference=shop_id,
        )
        await audit(
            db, actor_user_id=actor.user_id, action="shop.withdrawal", target_type="shop", target_id=shop_id,
            detail={"amount": str(amount)},
        )

    log.info("shop withdrawal: shop=%s owner=%s amount=%s", shop_id, actor.user_id, amount)
    await notify_quietly(notifier, [actor.user_id], *templates.shop_withdrawal(shop.name, amount))
    return amount


async def verify_shop(
    db: AsyncSession,
    actor: Actor,
    shop_id: str,
    *,
    verified: bool = True,
    notifier: Notifier | None = None,
) -> Shop:
    if not actor.is_elevated:
        raise Forbidden(ForbiddenReason.NOT_ELEVATED, "Moderator or admin role required")

    async with shop_locks.hold(shop_id), unit_of_work(db):
        shop = await _locked_shop(db, shop_id)
        changed = shop.verified != verified
        shop.verified = verified
        shop.updated_by = actor.user_id
        await audit(
            db, actor_user_id=actor.user_id, action="shop.verified", target_type="shop", target_id=shop.id,
            detail={"verified": verified},
        )
        recipients = await member_ids(db, shop_id)

    if changed and verified:
        await notify_quietly(notifier, recipients, *templates.shop_verified(shop.name))
    return shop


async def list_members(db: AsyncSession, actor: Actor, shop_id: str) -> list[ShopMember]:
    await get_shop(db, shop_id)
    if not actor.is_elevated and await role_in_shop(db, actor.user_id, shop_id) is None:
        raise Forbidden(ForbiddenReason.NOT_SHOP_MEMBER, "Only shop members can see the member list")
    stmt = select(ShopMember).where(ShopMember.shop_id == shop_id).order_by(ShopMember.created_at, ShopMember.id)
    return list((await db.execute(stmt)).scalars().all())


async def _find_user(db: AsyncSession, identifier: str) -> User:
    ident = identifier.strip()
    stmt = select(User).where(or_(User.id == ident, User.username == ident))
    user = (await db.execute(stmt)).scalars().first()
    if user is None:
        raise NotFound("User not found", details={"identifier": identifier})
    return user


async def add_member(
    db: AsyncSession,
    actor: Actor,
    shop_id: str,
    identifier: str,
    *,
    notifier: Notifier | None = None,
) -> ShopMember:
    """Invite a user (by id or username) as an editor."""
    async with shop_locks.hold(shop_id), unit_of_work(db):
        shop = await _locked_shop(db, shop_id)
        await _require_manager(db, actor, shop_id)

        user = await _find_user(db, identifier)
        if await role_in_shop(db, user.id, shop_id) is not None:
            raise ValidationError("User is already a member of this shop", details={"user_id": user.id})

        member = ShopMember(shop_id=shop_id, user_id=user.id, role=ShopRole.editor.value, created_by=actor.user_id)
        db.add(member)
        await db.flush()
        await audit(
            db, actor_user_id=actor.user_id, action="shop.member_added", target_type="shop", target_id=shop_id,
            detail={"user_id": user.id, "role": member.role},
        )

    log.info("shop member added: shop=%s user=%s by=%s", shop_id, user.id, actor.user_id)
    await notify_quietly(notifier, [user.id], *templates.member_added(shop.name))
    return member


async def remove_member(db: AsyncSession, actor: Actor, shop_id: str, user_id: str) -> None:
    async with shop_locks.hold(shop_id), unit_of_work(db):
        await _locked_shop(db, shop_id)
        await _require_manager(db, actor, shop_id)

        stmt = select(ShopMember).where(ShopMember.shop_id == shop_id, ShopMember.user_id == user_id)
        member = (await db.execute(stmt)).scalar_one_or_none()
        if member is None:
            raise NotFound("Membership not found", details={"shop_id": shop_id, "user_id": user_id})
        if member.role == ShopRole.owner.value:
            raise Forbidden(ForbiddenReason.OWNER_MEMBERSHIP, "The owner membership cannot be removed")

        await db.delete(member)
        await audit(
            db, actor_user_id=actor.user_id, action="shop.member_removed", target_type="shop", target_id=shop_id,
            detail={"user_id": user_id},
        )

    log.info("shop member removed: shop=%s user=%s by=%s", shop_id, user_id, actor.user_id)


async def transfer_ownership(
    db: AsyncSession,
    actor: Actor,
    shop_id: str,
    new_owner_id: str,
    *,
    notifier: Notifier | None = None,
) -> ShopMember:
    """Swap roles so the shop keeps exactly one owner."""
    async with shop_locks.hold(shop_id), unit_of_work(db):
        shop = await _locked_shop(db, shop_id)

        stmt = select(ShopMember).where(ShopMember.shop_id == shop_id)
        members = {m.user_id: m for m in (await db.execute(stmt)).scalars().all()}

        current = members.get(actor.user_id)
        if current is None or current.role != ShopRole.owner.value:
            raise Forbidden(ForbiddenReason.NOT_SHOP_OWNER, "Only the shop owner can hand over ownership")

        target = members.get(new_owner_id)
        if target is None:
            raise NotFound("New owner must already be a shop member", details={"user_id": new_owner_id})
        if target is current:
            return current

        # demote first: the one-owner index is checked per statement
        current.role = ShopRole.editor.value
        await db.flush()
        target.role = ShopRole.owner.value
        await db.flush()
        await audit(
            db, actor_user_id=actor.user_id, action="shop.ownership_transferred", target_type="shop",
            target_id=shop_id, detail={"from": actor.user_id, "to": new_owner_id},
        )

    log.info("shop ownership transferred: shop=%s from=%s to=%s", shop_id, actor.user_id, new_owner_id)
    await notify_quietly(notifier, [new_owner_id], *templates.ownership_received(shop.name))
    return target
