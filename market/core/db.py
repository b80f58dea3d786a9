from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from market.core.config import settings


engine = create_async_engine(settings.database_url, future=True, pool_pre_ping=True)

SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def get_db() -> AsyncIterator[AsyncSession]:
    async with SessionLocal() as db:
        yield db


@asynccontextmanager
async def unit_of_work(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Commit on success, roll back on any exit path (errors and cancellation included).
    Mutating services wrap their check-and-write region in this so a failed or
    abandoned request never leaves partial writes behind.
    """
    try:
        yield db
        await db.commit()
    except BaseException:
        await db.rollback()
        raise
