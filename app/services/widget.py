"""Cache-fronted access to aggregated widget payloads."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Literal

from ..cache import ResponseCache
from ..utils import normalize_username
from .aggregator import WidgetAggregator
from .cache_keys import CacheKeyManager
from .coalescer import RequestCoalescer

logger = logging.getLogger(__name__)

CacheStatus = Literal["HIT", "MISS"]


@dataclass(slots=True)
class WidgetResult:
    payload: dict[str, Any]
    cache_status: CacheStatus


@dataclass(slots=True)
class CacheReport:
    """Diagnostic view of a user's cache entry."""

    username: str
    cache_version: str
    cache_key: str
    cached: bool

    def to_payload(self) -> dict[str, Any]:
        return {
            "username": self.username,
            "cache_version": self.cache_version,
            "cache_key": self.cache_key,
            "cached": self.cached,
        }


class WidgetService:
    """Serves payloads from the cache and coalesces concurrent misses."""

    def __init__(
        self,
        aggregator: WidgetAggregator,
        cache: ResponseCache,
        keys: CacheKeyManager,
        coalescer: RequestCoalescer[dict[str, Any]] | None = None,
    ):
        self._aggregator = aggregator
        self._cache = cache
        self._keys = keys
        self._coalescer: RequestCoalescer[dict[str, Any]] = coalescer or RequestCoalescer()

    @property
    def keys(self) -> CacheKeyManager:
        return self._keys

    async def get_widget(self, username: str) -> WidgetResult:
        """Return the payload for ``username`` and whether it came from cache.

        Upstream errors of required sections propagate to every caller that
        joined the computation; nothing is cached for them.
        """

        cache_key = self._keys.key_for(username)
        cached = await self._cache.get(cache_key)
        if cached is not None:
            logger.debug("Cache hit for %s", cache_key)
            return WidgetResult(payload=_echo(cached, username), cache_status="HIT")

        async def compute() -> dict[str, Any]:
            logger.info("Cache miss for %s, querying upstreams", cache_key)
            aggregate = await self._aggregator.build(username)
            payload = aggregate.to_payload()
            await self._cache.put(cache_key, payload)
            return payload

        # One build per user at a time; a build started before a version bump
        # finishes under the key it started with and is not reused afterwards.
        payload = await self._coalescer.run(normalize_username(username), compute)
        return WidgetResult(payload=_echo(payload, username), cache_status="MISS")

    async def purge(self, username: str) -> tuple[str, bool]:
        """Evict the current-version entry for ``username``."""

        version = self._keys.version()
        removed = await self._cache.delete(self._keys.key_for(username, version=version))
        logger.info("Purged cache for %s (version %s, removed=%s)", username, version, removed)
        return version, removed

    async def cache_report(self, username: str) -> CacheReport:
        version = self._keys.version()
        cache_key = self._keys.key_for(username, version=version)
        return CacheReport(
            username=username,
            cache_version=version,
            cache_key=cache_key,
            cached=await self._cache.contains(cache_key),
        )


def _echo(payload: dict[str, Any], username: str) -> dict[str, Any]:
    """Copy of a shared payload that names ``username`` as the caller spelled it."""

    return {**payload, "username": username}
