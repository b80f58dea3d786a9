from datetime import datetime
from decimal import Decimal

from sqlalchemy import ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import DateTime

from market.core.ids import gen_id
from market.models.base import Base


class Purchase(Base):
    """Settlement receipt. One row per listing, ever."""

    __tablename__ = "purchases"
    __table_args__ = (
        UniqueConstraint("listing_id", name="uq_purchase_listing"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("prc"))
    listing_id: Mapped[str] = mapped_column(String, ForeignKey("listings.id"), nullable=False)
    buyer_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False, index=True)

    # account credited: shop settlement account or the owner's personal balance
    seller_account_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    seller_account_type: Mapped[str] = mapped_column(String(20), nullable=False)

    price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    purchased_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
