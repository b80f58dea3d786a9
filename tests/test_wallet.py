from decimal import Decimal

import pytest
from sqlalchemy import select

from market.core.config import settings
from market.core.errors import Forbidden, InvalidTransition, NotFound
from market.models.ledger import LedgerEntry
from market.services import pricing, wallet
from market.services.ledger import SqlLedger


async def test_deposit_is_credited_on_approval(db_session, alice, moderator, recorder):
    dep = await wallet.request_deposit(db_session, alice.actor, Decimal("50.00"))
    assert dep.status == "pending"
    assert [d.id for d in await wallet.pending_deposits(db_session, moderator.actor)] == [dep.id]

    approved = await wallet.approve_deposit(db_session, moderator.actor, dep.id, notifier=recorder)

    assert approved.status == "approved"
    assert approved.approved_by == moderator.id
    assert await SqlLedger(db_session).balance_of(alice.id) == Decimal("150.00")
    assert recorder.sent[0][0] == alice.id
    assert await wallet.pending_deposits(db_session, moderator.actor) == []


async def test_deposit_bonus(db_session, alice, moderator, monkeypatch):
    monkeypatch.setattr(settings, "deposit_bonus_rate", Decimal("10"))
    dep = await wallet.request_deposit(db_session, alice.actor, Decimal("50.00"))

    approved = await wallet.approve_deposit(db_session, moderator.actor, dep.id)

    assert approved.bonus == Decimal("5.00")
    assert await SqlLedger(db_session).balance_of(alice.id) == Decimal("155.00")
    types = (
        await db_session.execute(select(LedgerEntry.entry_type).where(LedgerEntry.reference == dep.id))
    ).scalars().all()
    assert sorted(types) == ["bonus", "deposit"]


async def test_deposit_approval_rules(db_session, alice, moderator):
    dep_id = (await wallet.request_deposit(db_session, alice.actor, Decimal("20.00"))).id

    with pytest.raises(Forbidden):
        await wallet.approve_deposit(db_session, alice.actor, dep_id)

    await wallet.approve_deposit(db_session, moderator.actor, dep_id)
    with pytest.raises(InvalidTransition):
        await wallet.approve_deposit(db_session, moderator.actor, dep_id)
    with pytest.raises(NotFound):
        await wallet.approve_deposit(db_session, moderator.actor, "dep_" + "0" * 32)

    assert await SqlLedger(db_session).balance_of(alice.id) == Decimal("120.00")


def test_pricing_helpers():
    assert pricing.final_price(Decimal("15"), Decimal("0")) == Decimal("15.00")
    assert pricing.final_price(Decimal("15"), Decimal("20")) == Decimal("12.00")
    assert pricing.final_price(Decimal("15"), Decimal("150")) == Decimal("0.00")
    assert pricing.deposit_bonus(Decimal("33.33"), Decimal("5")) == Decimal("1.67")
    assert pricing.boost_cost("7d") == Decimal("50.00")
