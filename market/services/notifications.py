from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from market.core.config import settings
from market.models.enums import DeliveryStatus
from market.models.notification import Notification

log = logging.getLogger(__name__)


class Notifier(Protocol):
    async def notify(self, user_id: str, title: str, message: str) -> None: ...

    async def notify_bulk(self, user_ids: Iterable[str], title: str, message: str) -> None: ...


class InboxNotifier:
    """
    Writes notifications to the users' inbox in a session of its own, after the
    caller's transaction has finished. Fire-and-forget: a failed write is
    logged here and never reaches the caller.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], *, push_enabled: bool | None = None):
        self._session_factory = session_factory
        self._push_enabled = bool(settings.notification_webhook_url) if push_enabled is None else push_enabled

    async def notify(self, user_id: str, title: str, message: str) -> None:
        await self.notify_bulk([user_id], title, message)

    async def notify_bulk(self, user_ids: Iterable[str], title: str, message: str) -> None:
        targets = list(dict.fromkeys(user_ids))
        if not targets:
            return
        status = DeliveryStatus.pending.value if self._push_enabled else DeliveryStatus.stored.value
        try:
            async with self._session_factory() as db:
                db.add_all(
                    [Notification(user_id=uid, title=title, message=message, status=status) for uid in targets]
                )
                await db.commit()
        except Exception:
            log.exception("notification write failed: title=%r recipients=%d", title, len(targets))


async def notify_quietly(notifier: Notifier | None, user_ids: Iterable[str], title: str, message: str) -> None:
    """Best-effort send for any Notifier implementation; errors are logged, not raised."""
    if notifier is None:
        return
    try:
        await notifier.notify_bulk(list(user_ids), title, message)
    except Exception:
        log.exception("notifier raised: title=%r", title)
