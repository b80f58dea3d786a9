import os

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Import Base + all models so metadata is complete
import market.models  # noqa: F401
from market.models.base import Base

from market.api.deps import get_notifier
from market.core.db import get_db
from market.main import app
from market.services.notifications import InboxNotifier

from fixtures_seed import alice, bob, carol, moderator, seller_shop  # noqa: F401


def _test_db_url(tmp_path) -> str:
    # services commit on their own, so every test gets a throwaway database
    return os.getenv("DATABASE_URL_TEST") or f"sqlite+aiosqlite:///{tmp_path}/market.db"


@pytest_asyncio.fixture
async def async_engine(tmp_path):
    engine = create_async_engine(_test_db_url(tmp_path), future=True)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(async_engine):
    return async_sessionmaker(async_engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def notifier(session_factory):
    return InboxNotifier(session_factory, push_enabled=False)


class RecordingNotifier:
    def __init__(self, *, fail: bool = False):
        self.sent: list[tuple[str, str, str]] = []
        self.fail = fail

    async def notify(self, user_id: str, title: str, message: str) -> None:
        await self.notify_bulk([user_id], title, message)

    async def notify_bulk(self, user_ids, title: str, message: str) -> None:
        if self.fail:
            raise RuntimeError("notification backend down")
        for uid in user_ids:
            self.sent.append((uid, title, message))


@pytest.fixture
def recorder():
    return RecordingNotifier()


@pytest_asyncio.fixture
async def client(session_factory, notifier):
    """
    HTTP client against the test database via dependency override.
    """
    async def _override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
