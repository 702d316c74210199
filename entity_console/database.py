from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from entity_console.config import settings
from entity_console.models import Base


def create_engine(url: str | None = None) -> AsyncEngine:
    return create_async_engine(url or settings.PREFERENCES_DB_URL, echo=False, future=True)


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_preferences_db(engine: AsyncEngine) -> None:
    """Create the preferences table if it does not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
