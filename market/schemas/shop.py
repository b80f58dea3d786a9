from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class ShopCreate(BaseModel):
    name: str = Field(min_length=3, max_length=120)
    description: str | None = Field(default=None, max_length=5_000)
    logo_url: str | None = Field(default=None, max_length=500)
    phone: str | None = Field(default=None, max_length=40)


class ShopUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=3, max_length=120)
    description: str | None = Field(default=None, max_length=5_000)
    logo_url: str | None = Field(default=None, max_length=500)
    phone: str | None = Field(default=None, max_length=40)


class ShopOut(BaseModel):
    id: str
    name: str
    description: str | None
    logo_url: str | None
    phone: str | None
    verified: bool
    created_at: datetime | None


class MemberAdd(BaseModel):
    # user id or username
    identifier: str = Field(min_length=1, max_length=100)


class OwnershipTransfer(BaseModel):
    user_id: str


class MemberOut(BaseModel):
    id: str
    shop_id: str
    user_id: str
    role: str
    created_at: datetime | None


class ShopWithdrawal(BaseModel):
    # omitted: withdraw everything
    amount: Decimal | None = Field(default=None, gt=0, decimal_places=2)
