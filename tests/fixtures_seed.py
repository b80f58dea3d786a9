from dataclasses import dataclass
from decimal import Decimal

import pytest_asyncio

from market.core.security import generate_api_key
from market.models.api_key import ApiKey
from market.models.enums import EntryType
from market.models.user import User
from market.schemas.listing import (
    ItemAttributes,
    ListingCreate,
    RealEstateAttributes,
    ServiceAttributes,
    VehicleAttributes,
)
from market.schemas.shop import ShopCreate
from market.services import listings, shops
from market.services.auth import Actor
from market.services.ledger import SqlLedger


@dataclass(frozen=True)
class SeededUser:
    actor: Actor
    api_key: str

    @property
    def id(self) -> str:
        return self.actor.user_id

    @property
    def headers(self) -> dict:
        return {"X-API-Key": self.api_key}


async def make_user(db, username: str, *, role: str = "user", balance: Decimal | str = "0") -> SeededUser:
    user = User(username=username, role=role, created_by="test", updated_by="test")
    db.add(user)
    await db.flush()

    key = generate_api_key()
    key_row = ApiKey(user_id=user.id, key_prefix=key.prefix, key_hash=key.hashed, is_active=True)
    db.add(key_row)

    ledger = SqlLedger(db)
    await ledger.open_account(user.id)
    if Decimal(balance) > 0:
        await ledger.credit(user.id, Decimal(balance), entry_type=EntryType.deposit.value, description="seed")
    await db.commit()

    return SeededUser(actor=Actor(user_id=user.id, role=role, api_key_id=key_row.id), api_key=key.plain)


def attributes_for(category: str):
    if category == "vehicle":
        return VehicleAttributes(mileage=42_000, top_speed=190)
    if category == "real_estate":
        return RealEstateAttributes()
    if category == "service":
        return ServiceAttributes()
    return ItemAttributes()


async def make_listing(
    db,
    owner: SeededUser,
    *,
    price: Decimal | str = "75.00",
    category: str = "item",
    shop_id: str | None = None,
    title: str = "Vintage camera",
):
    data = ListingCreate(
        title=title,
        description="",
        price=Decimal(price),
        attributes=attributes_for(category),
        shop_id=shop_id,
    )
    return await listings.create_listing(db, owner.actor, data)


async def make_shop(db, owner: SeededUser, name: str = "Corner Store"):
    return await shops.create_shop(db, owner.actor, ShopCreate(name=name))


@pytest_asyncio.fixture
async def alice(db_session):
    return await make_user(db_session, "alice", balance="100.00")


@pytest_asyncio.fixture
async def bob(db_session):
    return await make_user(db_session, "bob", balance="10.00")


@pytest_asyncio.fixture
async def carol(db_session):
    return await make_user(db_session, "carol")


@pytest_asyncio.fixture
async def moderator(db_session):
    return await make_user(db_session, "mod", role="moderator")


@pytest_asyncio.fixture
async def seller_shop(db_session, carol):
    return await make_shop(db_session, carol)
