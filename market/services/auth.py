from dataclasses import dataclass
from fastapi import Depends, HTTPException, Security
from fastapi.security.api_key import APIKeyHeader
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from market.core.db import get_db
from market.core.security import hash_api_key
from market.models.api_key import ApiKey
from market.models.enums import ELEVATED_ROLES
from market.models.user import User

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: str  # "user" | "moderator" | "admin" | "super_admin"
    api_key_id: str | None = None

    @property
    def is_elevated(self) -> bool:
        return self.role in {r.value for r in ELEVATED_ROLES}


async def get_actor(
    api_key: str | None = Security(api_key_header),
    db: AsyncSession = Depends(get_db),
) -> Actor:
    if not api_key:
        raise HTTPException(status_code=401, detail="Missing X-API-Key")

    hashed = hash_api_key(api_key)
    stmt = (
        select(ApiKey, User)
        .join(User, User.id == ApiKey.user_id)
        .where(ApiKey.key_hash == hashed, ApiKey.is_active.is_(True))
    )
    row = (await db.execute(stmt)).one_or_none()
    if not row:
        raise HTTPException(status_code=401, detail="Invalid API key")

    key, user = row
    return Actor(user_id=user.id, role=user.role, api_key_id=key.id)


def require_elevated(actor: Actor = Depends(get_actor)) -> Actor:
    if not actor.is_elevated:
        raise HTTPException(status_code=403, detail="Moderator or admin role required")
    return actor
