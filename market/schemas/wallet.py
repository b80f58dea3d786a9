from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class BalanceOut(BaseModel):
    account_id: str
    balance: Decimal


class LedgerEntryOut(BaseModel):
    id: str
    amount: Decimal
    entry_type: str
    reference: str | None
    description: str | None
    created_at: datetime | None


class DepositCreate(BaseModel):
    amount: Decimal = Field(gt=0, max_digits=14, decimal_places=2)


class DepositOut(BaseModel):
    id: str
    user_id: str
    amount: Decimal
    bonus: Decimal
    status: str
    approved_by: str | None
    approved_at: datetime | None
