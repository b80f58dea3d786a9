from sqlalchemy import Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from market.core.ids import gen_id
from market.models.base import Base, AuditMixin


class Shop(AuditMixin, Base):
    __tablename__ = "shops"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("shp"))
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    logo_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(40), nullable=True)

    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
