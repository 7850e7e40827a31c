"""Single-use tracking for redeemed authorization codes."""

import threading
from datetime import UTC, datetime, timedelta
from typing import Protocol, runtime_checkable

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from siop.core.settings import AUTH_CODE_TTL_DEFAULT
from siop.db.repo_replay import (
    is_code_consumed,
    mark_code_consumed,
    purge_expired_codes,
)

logger = structlog.get_logger(__name__)


class ReplayStoreError(Exception):
    """Raised when the store cannot answer whether a code was used."""


@runtime_checkable
class ReplayStore(Protocol):
    """Atomic check-and-mark over authorization code identifiers."""

    async def check_and_mark(
        self, code_id: str, expires_at: datetime | None = None
    ) -> bool:
        """Mark ``code_id`` consumed; return True if it already was."""
        ...


def _retention_expiry(expires_at: datetime | None) -> datetime:
    if expires_at is not None:
        return expires_at
    return datetime.now(UTC) + timedelta(seconds=AUTH_CODE_TTL_DEFAULT)


class InMemoryReplayStore:
    """Process-local store; check and mark happen under one lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._consumed: dict[str, datetime] = {}

    async def check_and_mark(
        self, code_id: str, expires_at: datetime | None = None
    ) -> bool:
        with self._lock:
            if code_id in self._consumed:
                return True
            self._consumed[code_id] = _retention_expiry(expires_at)
            return False

    async def is_consumed(self, code_id: str) -> bool:
        with self._lock:
            return code_id in self._consumed

    async def purge_expired(self) -> int:
        now = datetime.now(UTC)
        with self._lock:
            expired = [k for k, exp in self._consumed.items() if exp < now]
            for key in expired:
                del self._consumed[key]
        logger.info("replay_store.purged", removed=len(expired))
        return len(expired)


class SqlReplayStore:
    """Store backed by a table whose primary key rejects a second insert.

    Each call runs its own transaction, so the insert is the whole
    check-and-mark; a committed mark survives even if the caller never
    observes the result.
    """

    def __init__(self, factory: async_sessionmaker[AsyncSession]) -> None:
        self._factory = factory

    async def check_and_mark(
        self, code_id: str, expires_at: datetime | None = None
    ) -> bool:
        try:
            async with self._factory() as session:
                try:
                    await mark_code_consumed(
                        session, code_id, _retention_expiry(expires_at)
                    )
                    await session.commit()
                except IntegrityError as exc:
                    await session.rollback()
                    if await is_code_consumed(session, code_id):
                        return True
                    raise ReplayStoreError(
                        "consumed code could not be recorded"
                    ) from exc
        except SQLAlchemyError as exc:
            raise ReplayStoreError("replay store unavailable") from exc
        return False

    async def is_consumed(self, code_id: str) -> bool:
        try:
            async with self._factory() as session:
                return await is_code_consumed(session, code_id)
        except SQLAlchemyError as exc:
            raise ReplayStoreError("replay store unavailable") from exc

    async def purge_expired(self) -> int:
        try:
            async with self._factory() as session:
                removed = await purge_expired_codes(session, datetime.now(UTC))
                await session.commit()
        except SQLAlchemyError as exc:
            raise ReplayStoreError("replay store unavailable") from exc
        logger.info("replay_store.purged", removed=removed)
        return removed
