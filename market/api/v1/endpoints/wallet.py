from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from market.api.deps import get_notifier
from market.core.db import get_db
from market.models.deposit import DepositRequest
from market.schemas.wallet import DepositCreate, DepositOut
from market.services import wallet
from market.services.auth import Actor, get_actor
from market.services.notifications import Notifier

router = APIRouter()


def _deposit_out(d: DepositRequest) -> DepositOut:
    return DepositOut(
        id=d.id,
        user_id=d.user_id,
        amount=d.amount,
        bonus=d.bonus,
        status=d.status,
        approved_by=d.approved_by,
        approved_at=d.approved_at,
    )


@router.post("/wallet/deposits", response_model=DepositOut, status_code=201)
async def request_deposit(
    payload: DepositCreate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> DepositOut:
    return _deposit_out(await wallet.request_deposit(db, actor, payload.amount))


@router.get("/wallet/deposits", response_model=list[DepositOut])
async def pending_deposits(actor: Actor = Depends(get_actor), db: AsyncSession = Depends(get_db)) -> list[DepositOut]:
    return [_deposit_out(d) for d in await wallet.pending_deposits(db, actor)]


@router.post("/wallet/deposits/{deposit_id}/approve", response_model=DepositOut)
async def approve_deposit(
    deposit_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> DepositOut:
    return _deposit_out(await wallet.approve_deposit(db, actor, deposit_id, notifier=notifier))
