"""Database operations for consumed authorization codes."""

from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from siop.db.models_replay import ConsumedCodeEntity


async def mark_code_consumed(
    session: AsyncSession, code_hash: str, expires_at: datetime
) -> ConsumedCodeEntity:
    """Insert the consumed marker; raises IntegrityError if already present."""
    entity = ConsumedCodeEntity(code_hash=code_hash, expires_at=expires_at)
    session.add(entity)
    await session.flush()
    return entity


async def is_code_consumed(session: AsyncSession, code_hash: str) -> bool:
    """Return True if a marker exists for ``code_hash``."""
    stmt = select(ConsumedCodeEntity.code_hash).where(
        ConsumedCodeEntity.code_hash == code_hash
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none() is not None


async def purge_expired_codes(session: AsyncSession, now: datetime) -> int:
    """Delete markers whose code has expired; returns the number removed."""
    stmt = delete(ConsumedCodeEntity).where(ConsumedCodeEntity.expires_at < now)
    result = await session.execute(stmt)
    await session.flush()
    return result.rowcount or 0
