import asyncio

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

import market.models  # noqa: F401  # ensures Models are registered
from market.core.config import settings
from market.services.http_client import PushHttpClient
from market.services.notification_delivery import deliver_notification
from worker.celery_app import celery


async def _deliver_notification(notification_id: str) -> None:
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    Session = async_sessionmaker(engine, expire_on_commit=False)
    client = PushHttpClient()

    try:
        async with Session() as db:
            await deliver_notification(db, notification_id, client)
            await db.commit()
    finally:
        await client.aclose()
        await engine.dispose()


@celery.task(name="worker.tasks.deliver_notification")
def deliver_notification_task(notification_id: str) -> None:
    asyncio.run(_deliver_notification(notification_id))
