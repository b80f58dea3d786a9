import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from market.core.db import get_db
from market.core.ids import gen_id
from market.core.security import generate_api_key
from market.models.api_key import ApiKey
from market.models.user import User
from market.schemas.user import UserBootstrapOut, UserCreate
from market.services.internal_admin import require_internal_admin
from market.services.ledger import SqlLedger

log = logging.getLogger(__name__)
router = APIRouter()


@router.post("/users", response_model=UserBootstrapOut, dependencies=[Depends(require_internal_admin)])
async def bootstrap_user(payload: UserCreate, db: AsyncSession = Depends(get_db)) -> UserBootstrapOut:
    """
    Provision a user with an API key and an empty balance.
    Identity is owned elsewhere; this is the internal hand-off point.
    """
    user_id = gen_id("usr")
    user = User(id=user_id, username=payload.username.strip(), role=payload.role, created_by="internal", updated_by="internal")

    key = generate_api_key()
    key_row = ApiKey(user_id=user_id, key_prefix=key.prefix, key_hash=key.hashed, is_active=True)

    try:
        db.add(user)
        await db.flush()
        db.add(key_row)
        await SqlLedger(db).open_account(user_id)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        log.exception("user bootstrap failed: integrity error")
        raise HTTPException(status_code=409, detail="Username already taken")

    log.info("user provisioned: user=%s role=%s", user_id, payload.role)
    return UserBootstrapOut(user_id=user_id, username=user.username, role=user.role, api_key=key.plain)
