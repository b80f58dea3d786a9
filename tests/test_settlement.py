import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from market.core.errors import AlreadySold, Forbidden, ForbiddenReason, NotFound, PriceMismatch
from market.models.ledger import LedgerEntry
from market.models.notification import Notification
from market.models.purchase import Purchase
from market.services import settlement
from market.services.ledger import SqlLedger
from market.services.listings import get_listing
from market.services.shops import add_member

from conftest import RecordingNotifier
from fixtures_seed import make_listing, make_user


async def _balance(db, account_id):
    return await SqlLedger(db).balance_of(account_id)


async def test_purchase_moves_money_and_marks_sold(db_session, alice, carol, recorder):
    listing = await make_listing(db_session, carol, price="75.00")

    receipt = await settlement.purchase(db_session, alice.actor, listing.id, Decimal("75.00"), notifier=recorder)

    assert receipt.buyer_id == alice.id
    assert receipt.seller_account_id == carol.id
    assert receipt.seller_account_type == "user"
    assert receipt.price == Decimal("75.00")
    assert await _balance(db_session, alice.id) == Decimal("25.00")
    assert await _balance(db_session, carol.id) == Decimal("75.00")
    assert (await get_listing(db_session, listing.id)).status == "sold"

    with pytest.raises(AlreadySold):
        await settlement.purchase(db_session, alice.actor, listing.id, Decimal("75.00"))

    assert await _balance(db_session, alice.id) == Decimal("25.00")
    assert await _balance(db_session, carol.id) == Decimal("75.00")


async def test_insufficient_balance_changes_nothing(db_session, bob, carol):
    # a failed purchase rolls the session back and expires loaded instances
    listing_id = (await make_listing(db_session, carol, price="50.00")).id

    with pytest.raises(Forbidden) as exc:
        await settlement.purchase(db_session, bob.actor, listing_id, Decimal("50.00"))

    assert exc.value.forbidden_reason is ForbiddenReason.INSUFFICIENT_BALANCE
    assert await _balance(db_session, bob.id) == Decimal("10.00")
    assert await _balance(db_session, carol.id) == Decimal("0.00")
    assert (await get_listing(db_session, listing_id)).status == "active"
    count = (await db_session.execute(select(func.count()).select_from(Purchase))).scalar_one()
    assert count == 0


async def test_unknown_listing_is_not_found(db_session, alice):
    with pytest.raises(NotFound):
        await settlement.purchase(db_session, alice.actor, "lst_" + "0" * 32, Decimal("1.00"))


async def test_stale_price_is_rejected(db_session, alice, carol):
    listing_id = (await make_listing(db_session, carol, price="75.00")).id

    with pytest.raises(PriceMismatch):
        await settlement.purchase(db_session, alice.actor, listing_id, Decimal("70.00"))

    assert (await get_listing(db_session, listing_id)).status == "active"
    assert await _balance(db_session, alice.id) == Decimal("100.00")


async def test_price_is_checked_before_authorization(db_session, bob, carol):
    # bob cannot afford it either, but the stale price is reported first
    listing = await make_listing(db_session, carol, price="50.00")
    with pytest.raises(PriceMismatch):
        await settlement.purchase(db_session, bob.actor, listing.id, Decimal("5.00"))


async def test_owner_cannot_buy_own_listing(db_session, alice):
    listing = await make_listing(db_session, alice, price="10.00")

    with pytest.raises(Forbidden) as exc:
        await settlement.purchase(db_session, alice.actor, listing.id, Decimal("10.00"))
    assert exc.value.forbidden_reason is ForbiddenReason.SELF_PURCHASE


async def test_shop_member_cannot_buy_from_own_shop(db_session, alice, carol, seller_shop):
    await add_member(db_session, carol.actor, seller_shop.id, alice.id)
    listing = await make_listing(db_session, carol, price="10.00", shop_id=seller_shop.id)

    with pytest.raises(Forbidden) as exc:
        await settlement.purchase(db_session, alice.actor, listing.id, Decimal("10.00"))
    assert exc.value.forbidden_reason is ForbiddenReason.SELF_PURCHASE
    assert await _balance(db_session, alice.id) == Decimal("100.00")


async def test_services_are_not_instantly_purchasable(db_session, alice, carol):
    listing = await make_listing(db_session, carol, price="10.00", category="service")

    with pytest.raises(Forbidden) as exc:
        await settlement.purchase(db_session, alice.actor, listing.id, Decimal("10.00"))
    assert exc.value.forbidden_reason is ForbiddenReason.NOT_PURCHASABLE_CATEGORY


async def test_shop_listing_settles_into_shop_account(db_session, alice, carol, seller_shop, recorder):
    listing = await make_listing(db_session, carol, price="40.00", shop_id=seller_shop.id)

    receipt = await settlement.purchase(db_session, alice.actor, listing.id, Decimal("40.00"), notifier=recorder)

    assert receipt.seller_account_id == seller_shop.id
    assert receipt.seller_account_type == "shop"
    assert await _balance(db_session, seller_shop.id) == Decimal("40.00")
    assert await _balance(db_session, carol.id) == Decimal("0.00")

    # buyer confirmation plus sale alert to the shop's members
    recipients = [uid for uid, _, _ in recorder.sent]
    assert recipients == [alice.id, carol.id]


async def test_ledger_records_both_sides(db_session, alice, carol):
    listing = await make_listing(db_session, carol, price="75.00")
    await settlement.purchase(db_session, alice.actor, listing.id, Decimal("75.00"))

    rows = (
        await db_session.execute(select(LedgerEntry).where(LedgerEntry.reference == listing.id))
    ).scalars().all()
    by_account = {r.account_id: (r.amount, r.entry_type) for r in rows}
    assert by_account == {
        alice.id: (Decimal("-75.00"), "purchase"),
        carol.id: (Decimal("75.00"), "sale"),
    }


async def test_notification_failure_does_not_undo_purchase(db_session, alice, carol):
    listing = await make_listing(db_session, carol, price="75.00")

    receipt = await settlement.purchase(
        db_session, alice.actor, listing.id, Decimal("75.00"), notifier=RecordingNotifier(fail=True)
    )

    assert receipt.id.startswith("prc_")
    assert (await get_listing(db_session, listing.id)).status == "sold"
    assert await _balance(db_session, alice.id) == Decimal("25.00")


async def test_inbox_notifier_writes_buyer_and_seller_rows(db_session, alice, carol, notifier):
    listing = await make_listing(db_session, carol, price="75.00")
    await settlement.purchase(db_session, alice.actor, listing.id, Decimal("75.00"), notifier=notifier)

    rows = (await db_session.execute(select(Notification))).scalars().all()
    assert sorted(n.user_id for n in rows) == sorted([alice.id, carol.id])
    assert all(n.status == "stored" for n in rows)


async def test_concurrent_purchases_have_exactly_one_winner(session_factory, db_session, carol):
    buyers = [await make_user(db_session, f"buyer{i}", balance="100.00") for i in range(6)]
    listing = await make_listing(db_session, carol, price="60.00")

    async def attempt(buyer):
        async with session_factory() as db:
            return await settlement.purchase(db, buyer.actor, listing.id, Decimal("60.00"))

    results = await asyncio.gather(*(attempt(b) for b in buyers), return_exceptions=True)

    winners = [r for r in results if isinstance(r, Purchase)]
    losers = [r for r in results if not isinstance(r, Purchase)]
    assert len(winners) == 1
    assert all(isinstance(e, AlreadySold) for e in losers)

    winner_id = winners[0].buyer_id
    for b in buyers:
        expected = Decimal("40.00") if b.id == winner_id else Decimal("100.00")
        assert await _balance(db_session, b.id) == expected
    assert await _balance(db_session, carol.id) == Decimal("60.00")
    assert (await get_listing(db_session, listing.id)).status == "sold"
