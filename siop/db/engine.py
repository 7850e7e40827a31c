"""Async SQLAlchemy engine and session factory."""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from siop.core.settings import DatabaseSettings
from siop.db.base import BaseEntity
from siop.db.models_replay import ConsumedCodeEntity

_registered = (ConsumedCodeEntity,)


class _EngineHolder:
    """Lazy singleton for the async session factory."""

    factory: async_sessionmaker[AsyncSession] | None = None


_holder = _EngineHolder()


def build_engine(db: DatabaseSettings) -> AsyncEngine:
    """Create an async engine; pool sizing only applies to server databases."""
    if db.async_url.startswith("sqlite"):
        return create_async_engine(db.async_url)
    return create_async_engine(
        db.async_url,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
    )


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Lazily create the process-wide async session factory."""
    if _holder.factory is None:
        engine = build_engine(DatabaseSettings())
        _holder.factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _holder.factory


async def create_schema(engine: AsyncEngine) -> None:
    """Create the replay-store tables if they do not exist."""
    async with engine.begin() as conn:
        await conn.run_sync(BaseEntity.metadata.create_all)
