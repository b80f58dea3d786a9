import asyncio
import logging

from sqlalchemy import update
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from market.core.config import settings
from market.models.enums import DeliveryStatus
from market.models.notification import Notification
from market.services.notification_delivery import claim_due_notifications, requeue_expired_leases
from worker.celery_app import celery


log = logging.getLogger(__name__)

POLL_SECONDS = 2
BATCH_SIZE = 100


async def _tick() -> int:
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    Session = async_sessionmaker(engine, expire_on_commit=False)

    async with Session() as db:
        # reclaim rows whose task was lost or whose worker died
        await requeue_expired_leases(db)
        ids = await claim_due_notifications(db, batch_size=BATCH_SIZE)
        # commit before enqueue so workers see the processing rows
        await db.commit()

        if not ids:
            await engine.dispose()
            return 0

        failed: list[tuple[str, str]] = []
        for notification_id in ids:
            try:
                celery.send_task("worker.tasks.deliver_notification", args=[notification_id], queue="notifications")
            except Exception as e:
                failed.append((notification_id, f"{type(e).__name__}: {e}"))

        # enqueue failures go back to pending for the next tick
        for notification_id, msg in failed:
            await db.execute(
                update(Notification)
                .where(Notification.id == notification_id)
                .values(status=DeliveryStatus.pending.value, lease_expires_at=None, last_error=f"enqueue failed: {msg}")
            )
        if failed:
            await db.commit()

    await engine.dispose()
    log.info("tick: enqueued %d notifications, %d failed", len(ids) - len(failed), len(failed))
    return len(ids) - len(failed)


async def main():
    celery.connection().ensure_connection(max_retries=3)

    logging.basicConfig(level=logging.INFO)
    log.info("dispatcher: started")
    while True:
        try:
            await _tick()
        except Exception:
            log.exception("dispatcher: tick crashed")
        await asyncio.sleep(POLL_SECONDS)


if __name__ == "__main__":
    asyncio.run(main())
