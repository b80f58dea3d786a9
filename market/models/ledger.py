from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from sqlalchemy.types import DateTime

from market.core.ids import gen_id
from market.models.base import Base


class Balance(Base):
    __tablename__ = "balances"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_balance_non_negative"),
    )

    # usr_* for personal balances, shp_* for shop settlement accounts
    account_id: Mapped[str] = mapped_column(String, primary_key=True)
    account_type: Mapped[str] = mapped_column(String(20), nullable=False)

    balance: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class LedgerEntry(Base):
    __tablename__ = "ledger_entries"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("ldg"))
    account_id: Mapped[str] = mapped_column(String, nullable=False, index=True)

    # signed: negative for debits
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    entry_type: Mapped[str] = mapped_column(String(30), nullable=False)

    # listing / purchase / deposit id the movement belongs to
    reference: Mapped[str | None] = mapped_column(String, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
