from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy import select

from market.models.notification import Notification
from market.services.http_client import PushHttpClient
from market.services.notification_delivery import claim_due_notifications, deliver_notification, requeue_expired_leases
from market.services.notifications import InboxNotifier, notify_quietly

from conftest import RecordingNotifier

HOOK = "https://hooks.example.test/notify"
NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def _client(status: int, seen: list | None = None) -> PushHttpClient:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status, json={"ok": status < 300})

    return PushHttpClient(transport=httpx.MockTransport(handler))


async def _queued(session_factory, db_session, user_id) -> Notification:
    await InboxNotifier(session_factory, push_enabled=True).notify(user_id, "Hello", "World")
    return (await db_session.execute(select(Notification))).scalars().one()


async def test_bulk_notify_dedupes_recipients(session_factory, db_session, alice, carol):
    notifier = InboxNotifier(session_factory, push_enabled=False)
    await notifier.notify_bulk([alice.id, carol.id, alice.id], "Hi", "There")

    rows = (await db_session.execute(select(Notification))).scalars().all()
    assert sorted(n.user_id for n in rows) == sorted([alice.id, carol.id])
    assert {n.status for n in rows} == {"stored"}


async def test_notify_quietly_swallows_and_skips():
    await notify_quietly(None, ["usr_x"], "t", "m")
    await notify_quietly(RecordingNotifier(fail=True), ["usr_x"], "t", "m")


async def test_delivery_success(session_factory, db_session, alice):
    n = await _queued(session_factory, db_session, alice.id)
    assert n.status == "pending"

    ids = await claim_due_notifications(db_session, now=NOW)
    await db_session.commit()
    assert ids == [n.id]

    seen: list[httpx.Request] = []
    client = _client(200, seen)
    status = await deliver_notification(db_session, n.id, client, webhook_url=HOOK, now=NOW)
    await db_session.commit()
    await client.aclose()

    assert status == "sent"
    assert seen[0].headers["X-Request-Id"] == n.id
    row = await db_session.get(Notification, n.id, populate_existing=True)
    assert row.attempts == 1
    assert row.sent_at is not None
    assert row.lease_expires_at is None
    # claimed rows are not claimed twice
    assert await claim_due_notifications(db_session, now=NOW) == []


async def test_retryable_failure_schedules_retry(session_factory, db_session, alice):
    n = await _queued(session_factory, db_session, alice.id)

    client = _client(503)
    status = await deliver_notification(db_session, n.id, client, webhook_url=HOOK, max_attempts=3, now=NOW)
    await db_session.commit()
    await client.aclose()

    assert status == "failed"
    assert n.next_retry_at is not None and n.next_retry_at > NOW
    assert n.last_error.startswith("HTTP_503")

    # not due yet, then due once the backoff passed
    assert await claim_due_notifications(db_session, now=NOW) == []
    assert await claim_due_notifications(db_session, now=NOW + timedelta(hours=1)) == [n.id]


async def test_gives_up_after_max_attempts(session_factory, db_session, alice):
    n = await _queued(session_factory, db_session, alice.id)
    client = _client(500)

    for _ in range(2):
        await deliver_notification(db_session, n.id, client, webhook_url=HOOK, max_attempts=2, now=NOW)
    await db_session.commit()
    await client.aclose()

    assert n.attempts == 2
    assert n.status == "failed"
    assert n.next_retry_at is None


async def test_client_error_is_not_retried(session_factory, db_session, alice):
    n = await _queued(session_factory, db_session, alice.id)
    client = _client(404)

    await deliver_notification(db_session, n.id, client, webhook_url=HOOK, now=NOW)
    await client.aclose()

    assert n.status == "failed"
    assert n.next_retry_at is None


@pytest.mark.parametrize("status", ["sent", "stored"])
async def test_finished_rows_are_left_alone(session_factory, db_session, alice, status):
    n = await _queued(session_factory, db_session, alice.id)
    n.status = status
    await db_session.commit()

    client = _client(200)
    assert await deliver_notification(db_session, n.id, client, webhook_url=HOOK, now=NOW) is None
    await client.aclose()


async def test_lost_delivery_is_requeued_after_lease_expires(session_factory, db_session, alice):
    n = await _queued(session_factory, db_session, alice.id)
    assert await claim_due_notifications(db_session, lease_minutes=10, now=NOW) == [n.id]
    await db_session.commit()

    # no worker ever reports back on this row
    later = NOW + timedelta(minutes=5)
    assert await requeue_expired_leases(db_session, now=later) == 0
    assert await claim_due_notifications(db_session, now=later) == []

    expired = NOW + timedelta(minutes=11)
    assert await requeue_expired_leases(db_session, now=expired) == 1
    await db_session.commit()

    row = await db_session.get(Notification, n.id, populate_existing=True)
    assert row.status == "pending"
    assert row.lease_expires_at is None
    assert row.last_error == "requeued: lease expired"
    assert await claim_due_notifications(db_session, now=expired) == [n.id]
