from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from market.api.deps import get_notifier
from market.core.db import get_db
from market.models.shop import Shop
from market.models.shop_member import ShopMember
from market.schemas.shop import MemberAdd, MemberOut, OwnershipTransfer, ShopCreate, ShopOut, ShopUpdate, ShopWithdrawal
from market.schemas.wallet import BalanceOut
from market.services import shops
from market.services.auth import Actor, get_actor
from market.services.ledger import SqlLedger
from market.services.notifications import Notifier

router = APIRouter()


def _shop_out(s: Shop) -> ShopOut:
    return ShopOut(
        id=s.id,
        name=s.name,
        description=s.description,
        logo_url=s.logo_url,
        phone=s.phone,
        verified=s.verified,
        created_at=s.created_at,
    )


def _member_out(m: ShopMember) -> MemberOut:
    return MemberOut(id=m.id, shop_id=m.shop_id, user_id=m.user_id, role=m.role, created_at=m.created_at)


@router.post("/shops", response_model=ShopOut, status_code=201)
async def create_shop(
    payload: ShopCreate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> ShopOut:
    return _shop_out(await shops.create_shop(db, actor, payload, notifier=notifier))


@router.get("/shops/mine", response_model=list[ShopOut])
async def my_shops(actor: Actor = Depends(get_actor), db: AsyncSession = Depends(get_db)) -> list[ShopOut]:
    return [_shop_out(s) for s in await shops.shops_managed_by(db, actor.user_id)]


@router.get("/shops/{shop_id}", response_model=ShopOut)
async def get_shop(shop_id: str, actor: Actor = Depends(get_actor), db: AsyncSession = Depends(get_db)) -> ShopOut:
    return _shop_out(await shops.get_shop(db, shop_id))


@router.patch("/shops/{shop_id}", response_model=ShopOut)
async def update_shop(
    shop_id: str,
    payload: ShopUpdate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> ShopOut:
    return _shop_out(await shops.update_shop(db, actor, shop_id, payload))


@router.delete("/shops/{shop_id}", status_code=204)
async def delete_shop(shop_id: str, actor: Actor = Depends(get_actor), db: AsyncSession = Depends(get_db)) -> None:
    await shops.delete_shop(db, actor, shop_id)


@router.get("/shops/{shop_id}/balance", response_model=BalanceOut)
async def shop_balance(shop_id: str, actor: Actor = Depends(get_actor), db: AsyncSession = Depends(get_db)) -> BalanceOut:
    # member list access doubles as the balance read check
    await shops.list_members(db, actor, shop_id)
    return BalanceOut(account_id=shop_id, balance=await SqlLedger(db).balance_of(shop_id))


@router.post("/shops/{shop_id}/withdraw", response_model=BalanceOut)
async def withdraw_shop_balance(
    shop_id: str,
    payload: ShopWithdrawal,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> BalanceOut:
    await shops.withdraw_shop_balance(db, actor, shop_id, payload.amount, notifier=notifier)
    return BalanceOut(account_id=shop_id, balance=await SqlLedger(db).balance_of(shop_id))


@router.post("/shops/{shop_id}/verify", response_model=ShopOut)
async def verify_shop(
    shop_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> ShopOut:
    return _shop_out(await shops.verify_shop(db, actor, shop_id, notifier=notifier))


@router.get("/shops/{shop_id}/members", response_model=list[MemberOut])
async def list_members(
    shop_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> list[MemberOut]:
    return [_member_out(m) for m in await shops.list_members(db, actor, shop_id)]


@router.post("/shops/{shop_id}/members", response_model=MemberOut, status_code=201)
async def add_member(
    shop_id: str,
    payload: MemberAdd,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> MemberOut:
    return _member_out(await shops.add_member(db, actor, shop_id, payload.identifier, notifier=notifier))


@router.delete("/shops/{shop_id}/members/{user_id}", status_code=204)
async def remove_member(
    shop_id: str,
    user_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> None:
    await shops.remove_member(db, actor, shop_id, user_id)


@router.post("/shops/{shop_id}/owner", response_model=MemberOut)
async def transfer_ownership(
    shop_id: str,
    payload: OwnershipTransfer,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> MemberOut:
    return _member_out(await shops.transfer_ownership(db, actor, shop_id, payload.user_id, notifier=notifier))
