from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from market.api.deps import get_notifier
from market.core.db import get_db
from market.models.purchase import Purchase
from market.schemas.listing import (
    BoostIn,
    ListingCreate,
    ListingOut,
    ListingUpdate,
    PermissionsOut,
    StatusChange,
    TransferIn,
)
from market.schemas.purchase import PurchaseIn, ReceiptOut
from market.services import boosts, listings, settlement
from market.services.auth import Actor, get_actor
from market.services.authorization import can_view, load_permissions
from market.services.idempotency import (
    get_or_reserve_idempotency,
    release_idempotency,
    require_idempotency_key,
    store_idempotency_response,
)
from market.services.notifications import Notifier
from market.services.shops import memberships_of

router = APIRouter()


def _receipt_out(p: Purchase) -> ReceiptOut:
    return ReceiptOut(
        id=p.id,
        listing_id=p.listing_id,
        buyer_id=p.buyer_id,
        seller_account_id=p.seller_account_id,
        seller_account_type=p.seller_account_type,
        price=p.price,
        purchased_at=p.purchased_at,
    )


@router.post("/listings", response_model=ListingOut, status_code=201)
async def create_listing(
    payload: ListingCreate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> ListingOut:
    listing = await listings.create_listing(db, actor, payload, notifier=notifier)
    return listings.listing_out(listing)


@router.get("/listings", response_model=list[ListingOut])
async def list_listings(
    category: str | None = None,
    status: str | None = None,
    owner_id: str | None = None,
    shop_id: str | None = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> list[ListingOut]:
    rows = await listings.query_listings(
        db, category=category, status=status, owner_id=owner_id, shop_id=shop_id, limit=limit, offset=offset
    )
    roles = await memberships_of(db, actor.user_id)
    return [
        listings.listing_out(listing)
        for listing in rows
        if can_view(actor, listing, roles.get(listing.shop_id) if listing.shop_id else None)
    ]


@router.get("/listings/feed", response_model=list[ListingOut])
async def listing_feed(
    category: str | None = None,
    limit: int = Query(default=100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> list[ListingOut]:
    rows = await listings.ranked_feed(db, category=category, limit=limit)
    return [listings.listing_out(listing) for listing in rows]


@router.get("/listings/{listing_id}", response_model=ListingOut)
async def get_listing(
    listing_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = await listings.view_listing(db, actor, listing_id)
    return listings.listing_out(listing)


@router.patch("/listings/{listing_id}", response_model=ListingOut)
async def update_listing(
    listing_id: str,
    payload: ListingUpdate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = await listings.update_listing(db, actor, listing_id, payload)
    return listings.listing_out(listing)


@router.delete("/listings/{listing_id}", status_code=204)
async def delete_listing(
    listing_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> None:
    await listings.delete_listing(db, actor, listing_id)


@router.post("/listings/{listing_id}/status", response_model=ListingOut)
async def change_status(
    listing_id: str,
    payload: StatusChange,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = await listings.change_status(db, actor, listing_id, payload.status)
    return listings.listing_out(listing)


@router.post("/listings/{listing_id}/transfer", response_model=ListingOut)
async def transfer_listing(
    listing_id: str,
    payload: TransferIn,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = await listings.transfer_listing(db, actor, listing_id, payload.shop_id)
    return listings.listing_out(listing)


@router.get("/listings/{listing_id}/permissions", response_model=PermissionsOut)
async def listing_permissions(
    listing_id: str,
    destination_shop_id: str | None = None,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> PermissionsOut:
    listing = await listings.get_listing(db, listing_id)
    p = await load_permissions(db, actor, listing, destination_shop_id=destination_shop_id)
    return PermissionsOut(
        can_view=p.can_view,
        can_edit=p.can_edit,
        can_transfer=p.can_transfer,
        can_purchase=p.can_purchase,
        purchase_denial=p.purchase_denial.value if p.purchase_denial else None,
    )


@router.post("/listings/{listing_id}/boost", response_model=ListingOut)
async def boost_listing(
    listing_id: str,
    payload: BoostIn,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> ListingOut:
    listing = await boosts.purchase_boost(db, actor, listing_id, payload.option, notifier=notifier)
    return listings.listing_out(listing)


@router.post("/listings/{listing_id}/purchase", response_model=ReceiptOut)
async def purchase_listing(
    listing_id: str,
    payload: PurchaseIn,
    request: Request,
    idempotency_key: str = Depends(require_idempotency_key),
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> ReceiptOut:
    existing = await get_or_reserve_idempotency(
        db=db,
        actor=actor,
        idempotency_key=idempotency_key,
        request_path=request.url.path,
        request_body=payload.model_dump(mode="json"),
    )
    if existing is not None:
        return ReceiptOut.model_validate(existing.response)

    try:
        receipt = await settlement.purchase(db, actor, listing_id, payload.expected_price, notifier=notifier)
    except Exception:
        # a key whose request failed can be retried
        await release_idempotency(db=db, actor=actor, idempotency_key=idempotency_key)
        raise

    out = _receipt_out(receipt)
    await store_idempotency_response(
        db=db, actor=actor, idempotency_key=idempotency_key, response=out.model_dump(mode="json")
    )
    return out
