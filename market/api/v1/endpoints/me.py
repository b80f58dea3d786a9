from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from market.core.db import get_db
from market.core.errors import NotFound
from market.models.notification import Notification
from market.schemas.notification import NotificationOut
from market.schemas.user import MeOut
from market.schemas.wallet import BalanceOut, LedgerEntryOut
from market.services.auth import Actor, get_actor
from market.services.ledger import SqlLedger

router = APIRouter()


@router.get("/me", response_model=MeOut)
async def me(actor: Actor = Depends(get_actor)) -> MeOut:
    return MeOut(user_id=actor.user_id, role=actor.role, api_key_id=actor.api_key_id)


@router.get("/me/balance", response_model=BalanceOut)
async def my_balance(actor: Actor = Depends(get_actor), db: AsyncSession = Depends(get_db)) -> BalanceOut:
    return BalanceOut(account_id=actor.user_id, balance=await SqlLedger(db).balance_of(actor.user_id))


@router.get("/me/transactions", response_model=list[LedgerEntryOut])
async def my_transactions(
    limit: int = Query(default=100, ge=1, le=500),
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> list[LedgerEntryOut]:
    rows = await SqlLedger(db).entries(actor.user_id, limit=limit)
    return [
        LedgerEntryOut(
            id=r.id,
            amount=r.amount,
            entry_type=r.entry_type,
            reference=r.reference,
            description=r.description,
            created_at=r.created_at,
        )
        for r in rows
    ]


@router.get("/me/notifications", response_model=list[NotificationOut])
async def my_notifications(
    unread_only: bool = False,
    limit: int = Query(default=50, ge=1, le=200),
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> list[NotificationOut]:
    stmt = select(Notification).where(Notification.user_id == actor.user_id)
    if unread_only:
        stmt = stmt.where(Notification.is_read.is_(False))
    stmt = stmt.order_by(Notification.created_at.desc(), Notification.id).limit(limit)
    rows = (await db.execute(stmt)).scalars().all()
    return [
        NotificationOut(id=n.id, title=n.title, message=n.message, is_read=n.is_read, created_at=n.created_at)
        for n in rows
    ]


@router.post("/me/notifications/{notification_id}/read", status_code=204)
async def mark_notification_read(
    notification_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> None:
    result = await db.execute(
        update(Notification)
        .where(Notification.id == notification_id, Notification.user_id == actor.user_id)
        .values(is_read=True)
    )
    if result.rowcount != 1:
        await db.rollback()
        raise NotFound("Notification not found", details={"notification_id": notification_id})
    await db.commit()
