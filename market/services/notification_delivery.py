from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from market.core.config import settings
from market.models.enums import DeliveryStatus
from market.models.notification import Notification
from market.services.http_client import PushHttpClient
from market.services.retry import next_retry_at

log = logging.getLogger(__name__)


def _due(now: datetime):
    return or_(
        Notification.status == DeliveryStatus.pending.value,
        and_(
            Notification.status == DeliveryStatus.failed.value,
            Notification.next_retry_at.is_not(None),
            Notification.next_retry_at <= now,
        ),
    )


async def requeue_expired_leases(db: AsyncSession, *, now: datetime | None = None) -> int:
    """Hand rows whose worker never reported back to the next claim. The caller commits."""
    now = now or datetime.now(timezone.utc)
    result = await db.execute(
        update(Notification)
        .where(
            Notification.status == DeliveryStatus.processing.value,
            Notification.lease_expires_at.is_not(None),
            Notification.lease_expires_at < now,
        )
        .values(
            status=DeliveryStatus.pending.value,
            lease_expires_at=None,
            last_error="requeued: lease expired",
        )
        .execution_options(synchronize_session=False)
    )
    count = int(result.rowcount or 0)
    if count:
        log.warning("notification leases expired, requeued %d", count)
    return count


async def claim_due_notifications(
    db: AsyncSession,
    *,
    batch_size: int = 100,
    lease_minutes: int | None = None,
    now: datetime | None = None,
) -> list[str]:
    """
    Lock due rows (skipping ones another dispatcher holds) and flag them
    processing under a lease so they are not enqueued twice. The caller commits.
    """
    now = now or datetime.now(timezone.utc)
    lease_minutes = lease_minutes or settings.notification_lease_minutes
    stmt = (
        select(Notification.id)
        .where(_due(now))
        .order_by(Notification.created_at.asc(), Notification.id)
        .with_for_update(skip_locked=True)
        .limit(batch_size)
    )
    ids = list((await db.execute(stmt)).scalars().all())
    if not ids:
        return []

    await db.execute(
        update(Notification)
        .where(Notification.id.in_(ids))
        .values(status=DeliveryStatus.processing.value, lease_expires_at=now + timedelta(minutes=lease_minutes))
        .execution_options(synchronize_session=False)
    )
    await db.flush()
    return ids


async def deliver_notification(
    db: AsyncSession,
    notification_id: str,
    client: PushHttpClient,
    *,
    webhook_url: str | None = None,
    max_attempts: int | None = None,
    now: datetime | None = None,
) -> str | None:
    """
    Push one notification to the webhook and record the outcome on the row.
    Returns the resulting status, or None when there was nothing to do.
    """
    webhook_url = webhook_url or settings.notification_webhook_url
    max_attempts = max_attempts or settings.notification_max_attempts
    now = now or datetime.now(timezone.utc)

    n = (await db.execute(select(Notification).where(Notification.id == notification_id))).scalar_one_or_none()
    if n is None or n.status in (DeliveryStatus.sent.value, DeliveryStatus.stored.value):
        return None

    if not webhook_url:
        # push was switched off after the row was queued
        n.status = DeliveryStatus.stored.value
        n.next_retry_at = None
        n.lease_expires_at = None
        return n.status

    result = await client.post_json(
        url=webhook_url,
        json_body={
            "notification_id": n.id,
            "user_id": n.user_id,
            "title": n.title,
            "message": n.message,
        },
        request_id=n.id,
    )
    n.attempts += 1
    n.lease_expires_at = None

    if result.ok:
        n.status = DeliveryStatus.sent.value
        n.sent_at = now
        n.last_error = None
        n.next_retry_at = None
        log.info("notification pushed: id=%s attempts=%d", n.id, n.attempts)
        return n.status

    n.status = DeliveryStatus.failed.value
    n.last_error = f"{result.error_code}: {result.error_message}"
    if result.retryable and n.attempts < max_attempts:
        n.next_retry_at = next_retry_at(n.attempts, now)
        log.warning("notification push failed, retrying: id=%s attempts=%d error=%s", n.id, n.attempts, n.last_error)
    else:
        n.next_retry_at = None
        log.error("notification push gave up: id=%s attempts=%d error=%s", n.id, n.attempts, n.last_error)
    return n.status
