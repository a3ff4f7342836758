from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from config.settings import settings


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models across modules."""

    pass


engine: AsyncEngine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_size=20,
    max_overflow=10,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: yields an AsyncSession, auto-closes after request."""
    async with async_session_factory() as session:
        yield session


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """FastAPI dependency: the factory batch jobs use to open one session per worker."""
    return async_session_factory


@asynccontextmanager
async def transaction_scope(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """One all-or-nothing unit: commit on success, roll back on any exception.

    Reads issued earlier on the same session (auth lookups, eligibility
    queries) may have auto-begun a transaction; it is adopted, not nested.
    """
    if not db.in_transaction():
        await db.begin()
    try:
        yield db
        await db.commit()
    except Exception:
        await db.rollback()
        raise
