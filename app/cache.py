"""TTL-bounded storage for serialized widget payloads."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .db_models import CacheEntry

logger = logging.getLogger(__name__)


class ResponseCache:
    """Key/value cache with a fixed freshness window.

    Entries past ``expires_at`` are treated as absent and removed lazily on
    the next lookup. Nothing here is durable beyond the TTL.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        ttl_seconds: int = 3_600,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self._session_factory = session_factory
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock

    @property
    def ttl_seconds(self) -> int:
        return int(self._ttl.total_seconds())

    async def get(self, key: str) -> dict[str, Any] | None:
        now = self._clock()
        async with self._session_factory() as session:
            entry = await session.get(CacheEntry, key)
            if entry is None:
                return None
            if entry.expires_at <= now:
                logger.debug("Cache entry %s expired at %s", key, entry.expires_at)
                await session.delete(entry)
                await session.commit()
                return None
            return entry.payload

    async def put(self, key: str, payload: dict[str, Any]) -> None:
        now = self._clock()
        async with self._session_factory() as session:
            await session.merge(
                CacheEntry(
                    key=key,
                    payload=payload,
                    stored_at=now,
                    expires_at=now + self._ttl,
                )
            )
            await session.commit()

    async def delete(self, key: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(CacheEntry).where(CacheEntry.key == key)
            )
            await session.commit()
            return bool(result.rowcount)

    async def contains(self, key: str) -> bool:
        """Report whether a fresh entry exists without mutating anything."""

        now = self._clock()
        async with self._session_factory() as session:
            result = await session.execute(
                select(CacheEntry.key).where(
                    CacheEntry.key == key, CacheEntry.expires_at > now
                )
            )
            return result.scalar_one_or_none() is not None
