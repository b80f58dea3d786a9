from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import DateTime

from market.core.ids import gen_id
from market.models.base import Base, AuditMixin


class DepositRequest(AuditMixin, Base):
    __tablename__ = "deposit_requests"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_deposit_amount_positive"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("dep"))
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    # "pending" | "approved"
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    bonus: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))

    approved_by: Mapped[str | None] = mapped_column(String, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
