import hashlib
import json

from fastapi import Header, HTTPException
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from market.core.db import unit_of_work
from market.models.idempotency import IdempotencyKey
from market.services.auth import Actor


def _hash_request(path: str, body: dict) -> str:
    # Stable hash to detect conflicts (same idempotency key but different request)
    raw = json.dumps({"path": path, "body": body}, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return "sha256:" + hashlib.sha256(raw).hexdigest()


async def require_idempotency_key(idempotency_key: str | None = Header(default=None)) -> str:
    if not idempotency_key:
        raise HTTPException(status_code=400, detail="Missing Idempotency-Key header")
    if len(idempotency_key) > 200:
        raise HTTPException(status_code=400, detail="Idempotency-Key too long")
    return idempotency_key


async def get_or_reserve_idempotency(
    *,
    db: AsyncSession,
    actor: Actor,
    idempotency_key: str,
    request_path: str,
    request_body: dict,
) -> IdempotencyKey | None:
    """
    Returns the finished record when this key was already used for the same
    request; the caller replays its response. Otherwise reserves the key
    (committed, so concurrent retries see it) and returns None.
    """
    req_hash = _hash_request(request_path, request_body)

    async with unit_of_work(db):
        stmt = select(IdempotencyKey).where(
            IdempotencyKey.user_id == actor.user_id,
            IdempotencyKey.key == idempotency_key,
        )
        existing = (await db.execute(stmt)).scalar_one_or_none()
        if existing:
            if existing.request_hash != req_hash:
                raise HTTPException(status_code=409, detail="Idempotency-Key reuse with different request")
            if not existing.response:
                raise HTTPException(status_code=409, detail="Request with this Idempotency-Key is still in progress")
            return existing

        # Reserve by inserting an empty response row
        db.add(IdempotencyKey(user_id=actor.user_id, key=idempotency_key, request_hash=req_hash, response={}))
        try:
            await db.flush()
        except IntegrityError:
            # a concurrent retry reserved the key first
            raise HTTPException(status_code=409, detail="Request with this Idempotency-Key is still in progress")
    return None


async def store_idempotency_response(
    *,
    db: AsyncSession,
    actor: Actor,
    idempotency_key: str,
    response: dict,
) -> None:
    async with unit_of_work(db):
        stmt = select(IdempotencyKey).where(
            IdempotencyKey.user_id == actor.user_id,
            IdempotencyKey.key == idempotency_key,
        )
        row = (await db.execute(stmt)).scalar_one()
        row.response = response


async def release_idempotency(*, db: AsyncSession, actor: Actor, idempotency_key: str) -> None:
    """Drop a reservation whose request failed, so the client may retry with the same key."""
    async with unit_of_work(db):
        await db.execute(
            delete(IdempotencyKey).where(
                IdempotencyKey.user_id == actor.user_id,
                IdempotencyKey.key == idempotency_key,
            )
        )
