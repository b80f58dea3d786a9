from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import DateTime

from market.core.ids import gen_id
from market.models.base import Base, AuditMixin


class Listing(AuditMixin, Base):
    __tablename__ = "listings"
    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_listing_price_non_negative"),
        CheckConstraint("view_count >= 0", name="ck_listing_view_count_non_negative"),
        CheckConstraint(
            "category IN ('vehicle', 'real_estate', 'item', 'service')",
            name="ck_listing_category",
        ),
        CheckConstraint(
            "status IN ('active', 'passive', 'out_of_stock', 'sold')",
            name="ck_listing_status",
        ),
        # vehicle attributes present iff category = vehicle
        CheckConstraint(
            "(category = 'vehicle' AND mileage IS NOT NULL AND mileage >= 0"
            " AND top_speed IS NOT NULL AND top_speed >= 0)"
            " OR (category != 'vehicle' AND mileage IS NULL AND top_speed IS NULL)",
            name="ck_listing_vehicle_attributes",
        ),
        Index("ix_listings_category_status", "category", "status"),
        Index("ix_listings_created_at", "created_at"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("lst"))

    # original creator; stays set even when a shop sells the listing
    owner_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False, index=True)
    shop_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("shops.id", ondelete="SET NULL"), nullable=True, index=True
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    category: Mapped[str] = mapped_column(String(30), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    # "active" | "passive" | "out_of_stock" | "sold"
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="active")

    view_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    boosted_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # vehicle only
    mileage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    top_speed: Mapped[int | None] = mapped_column(Integer, nullable=True)
