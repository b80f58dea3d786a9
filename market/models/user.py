from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from market.core.ids import gen_id
from market.models.base import Base, AuditMixin


class User(AuditMixin, Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("usr"))
    username: Mapped[str] = mapped_column(String(60), nullable=False, unique=True)

    # "user" | "moderator" | "admin" | "super_admin"; supplied by the identity side, never computed here
    role: Mapped[str] = mapped_column(String(30), nullable=False, default="user")
