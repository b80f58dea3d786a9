from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from market.core.config import settings
from market.core.db import unit_of_work
from market.core.errors import Forbidden, ForbiddenReason, InvalidTransition, NotFound, ValidationError
from market.models.deposit import DepositRequest
from market.models.enums import DepositStatus, EntryType
from market.services import pricing, templates
from market.services.audit import audit
from market.services.auth import Actor
from market.services.ledger import SqlLedger
from market.services.notifications import Notifier, notify_quietly

log = logging.getLogger(__name__)


async def request_deposit(db: AsyncSession, actor: Actor, amount: Decimal) -> DepositRequest:
    if amount <= 0:
        raise ValidationError("Deposit amount must be positive", details={"amount": str(amount)})

    async with unit_of_work(db):
        dep = DepositRequest(
            user_id=actor.user_id,
            amount=amount,
            status=DepositStatus.pending.value,
            created_by=actor.user_id,
            updated_by=actor.user_id,
        )
        db.add(dep)
        await db.flush()
        await audit(
            db, actor_user_id=actor.user_id, action="deposit.requested", target_type="deposit", target_id=dep.id,
            detail={"amount": str(amount)},
        )
    return dep


async def approve_deposit(
    db: AsyncSession,
    actor: Actor,
    deposit_id: str,
    *,
    notifier: Notifier | None = None,
) -> DepositRequest:
    """Credit a pending deposit (plus the configured bonus) to its requester."""
    if not actor.is_elevated:
        raise Forbidden(ForbiddenReason.NOT_ELEVATED, "Moderator or admin role required")

    async with unit_of_work(db):
        stmt = (
            select(DepositRequest)
            .where(DepositRequest.id == deposit_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        dep = (await db.execute(stmt)).scalar_one_or_none()
        if dep is None:
            raise NotFound("Deposit request not found", details={"deposit_id": deposit_id})
        if dep.status != DepositStatus.pending.value:
            raise InvalidTransition("Deposit request was already processed", details={"deposit_id": deposit_id})

        ledger = SqlLedger(db)
        bonus = pricing.deposit_bonus(dep.amount, settings.deposit_bonus_rate)
        await ledger.credit(dep.user_id, dep.amount, entry_type=EntryType.deposit.value, reference=dep.id)
        if bonus > 0:
            await ledger.credit(dep.user_id, bonus, entry_type=EntryType.bonus.value, reference=dep.id)

        dep.status = DepositStatus.approved.value
        dep.bonus = bonus
        dep.approved_by = actor.user_id
        dep.approved_at = datetime.now(timezone.utc)
        dep.updated_by = actor.user_id
        await audit(
            db, actor_user_id=actor.user_id, action="deposit.approved", target_type="deposit", target_id=dep.id,
            detail={"user_id": dep.user_id, "amount": str(dep.amount), "bonus": str(bonus)},
        )
        credited = dep.amount + bonus

    log.info("deposit approved: deposit=%s user=%s credited=%s by=%s", deposit_id, dep.user_id, credited, actor.user_id)
    await notify_quietly(notifier, [dep.user_id], *templates.balance_added(credited))
    return dep


async def pending_deposits(db: AsyncSession, actor: Actor) -> list[DepositRequest]:
    if not actor.is_elevated:
        raise Forbidden(ForbiddenReason.NOT_ELEVATED, "Moderator or admin role required")
    stmt = (
        select(DepositRequest)
        .where(DepositRequest.status == DepositStatus.pending.value)
        .order_by(DepositRequest.created_at.desc(), DepositRequest.id)
    )
    return list((await db.execute(stmt)).scalars().all())
