from __future__ import annotations

from decimal import Decimal
from typing import Protocol

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from market.core.errors import InsufficientFunds, NotFound, ValidationError
from market.models.enums import AccountType
from market.models.ledger import Balance, LedgerEntry
from market.models.shop import Shop

ZERO = Decimal("0.00")


class Ledger(Protocol):
    async def balance_of(self, account_id: str) -> Decimal: ...

    async def debit(
        self, account_id: str, amount: Decimal, *, entry_type: str, reference: str | None = None, description: str | None = None
    ) -> None: ...

    async def credit(
        self, account_id: str, amount: Decimal, *, entry_type: str, reference: str | None = None, description: str | None = None
    ) -> None: ...

    async def transfer(
        self,
        from_account: str,
        to_account: str,
        amount: Decimal,
        *,
        debit_type: str,
        credit_type: str,
        reference: str | None = None,
    ) -> None: ...


def account_type_of(account_id: str) -> str:
    return AccountType.shop.value if account_id.startswith("shp_") else AccountType.user.value


def _check_amount(amount: Decimal) -> Decimal:
    amount = Decimal(amount)
    if amount < 0:
        raise ValidationError("Amount must not be negative", details={"amount": str(amount)})
    return amount


class SqlLedger:
    """
    Balance-of-record on the caller's session. Nothing here commits: every
    movement joins the caller's transaction, so a settlement that fails later
    takes its debit and credit down with it.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def open_account(self, account_id: str, account_type: str | None = None) -> Balance:
        row = await self.db.get(Balance, account_id)
        if row is None:
            row = Balance(
                account_id=account_id,
                account_type=account_type or account_type_of(account_id),
                balance=ZERO,
            )
            self.db.add(row)
            await self.db.flush()
        return row

    async def balance_of(self, account_id: str) -> Decimal:
        stmt = (
            select(Balance.balance)
            .where(Balance.account_id == account_id)
            .execution_options(populate_existing=True)
        )
        value = (await self.db.execute(stmt)).scalar_one_or_none()
        return ZERO if value is None else Decimal(value)

    async def debit(
        self,
        account_id: str,
        amount: Decimal,
        *,
        entry_type: str,
        reference: str | None = None,
        description: str | None = None,
    ) -> None:
        amount = _check_amount(amount)
        # conditional decrement: never lets the balance go below zero
        result = await self.db.execute(
            update(Balance)
            .where(Balance.account_id == account_id, Balance.balance >= amount)
            .values(balance=Balance.balance - amount)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount != 1:
            raise InsufficientFunds(
                "Insufficient balance",
                details={"account_id": account_id, "amount": str(amount)},
            )
        self.db.add(
            LedgerEntry(
                account_id=account_id,
                amount=-amount,
                entry_type=entry_type,
                reference=reference,
                description=description,
            )
        )
        await self.db.flush()

    async def credit(
        self,
        account_id: str,
        amount: Decimal,
        *,
        entry_type: str,
        reference: str | None = None,
        description: str | None = None,
    ) -> None:
        amount = _check_amount(amount)
        if account_type_of(account_id) == AccountType.shop.value:
            # shop accounts open and close with their shop, never on demand
            shop = await self.db.execute(select(Shop.id).where(Shop.id == account_id))
            if shop.scalar_one_or_none() is None:
                raise NotFound("Shop settlement account is closed", details={"account_id": account_id})
        else:
            await self.open_account(account_id)
        result = await self.db.execute(
            update(Balance)
            .where(Balance.account_id == account_id)
            .values(balance=Balance.balance + amount)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount != 1:
            raise NotFound("Account not found", details={"account_id": account_id})
        self.db.add(
            LedgerEntry(
                account_id=account_id,
                amount=amount,
                entry_type=entry_type,
                reference=reference,
                description=description,
            )
        )
        await self.db.flush()

    async def transfer(
        self,
        from_account: str,
        to_account: str,
        amount: Decimal,
        *,
        debit_type: str,
        credit_type: str,
        reference: str | None = None,
    ) -> None:
        if from_account == to_account:
            raise ValidationError("Cannot transfer to the same account", details={"account_id": from_account})
        await self.debit(from_account, amount, entry_type=debit_type, reference=reference)
        await self.credit(to_account, amount, entry_type=credit_type, reference=reference)

    async def entries(self, account_id: str, *, limit: int = 100) -> list[LedgerEntry]:
        stmt = (
            select(LedgerEntry)
            .where(LedgerEntry.account_id == account_id)
            .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id)
            .limit(limit)
        )
        return list((await self.db.execute(stmt)).scalars().all())
