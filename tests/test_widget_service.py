"""End-to-end behaviour of the cache-fronted widget service."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from app.cache import ResponseCache
from app.database import Database
from app.errors import UpstreamRateLimited
from app.models import AggregatePayload, UserProfile
from app.services.cache_keys import CacheKeyManager
from app.services.widget import WidgetService


class StubAggregator:
    """Counts builds and blocks until released so callers can pile up."""

    def __init__(self) -> None:
        self.builds = 0
        self.release = asyncio.Event()
        self.release.set()
        self.error: Exception | None = None

    async def build(self, username: str) -> AggregatePayload:
        self.builds += 1
        await self.release.wait()
        if self.error is not None:
            raise self.error
        return AggregatePayload(
            username=username,
            profile=UserProfile(username=username),
            timestamp=self.builds,
        )


@pytest.fixture
async def database(tmp_path) -> Any:
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'widget.db'}")
    await db.create_all()
    yield db
    await db.dispose()


def _service(database: Database, aggregator: StubAggregator, version: dict[str, Any]) -> WidgetService:
    return WidgetService(
        aggregator,  # type: ignore[arg-type]
        ResponseCache(database.session_factory, ttl_seconds=3600),
        CacheKeyManager("https://mal-widget.internal", lambda: version["value"]),
    )


@pytest.mark.anyio("asyncio")
async def test_miss_then_hit(database: Database) -> None:
    aggregator = StubAggregator()
    service = _service(database, aggregator, {"value": None})

    first = await service.get_widget("Someone")
    second = await service.get_widget("SOMEONE")

    assert first.cache_status == "MISS"
    assert second.cache_status == "HIT"
    assert first.payload["username"] == "Someone"
    assert second.payload["username"] == "SOMEONE"
    assert second.payload["timestamp"] == first.payload["timestamp"]
    assert aggregator.builds == 1


@pytest.mark.anyio("asyncio")
async def test_joined_callers_get_their_own_spelling(database: Database) -> None:
    aggregator = StubAggregator()
    aggregator.release.clear()
    service = _service(database, aggregator, {"value": None})

    spellings = ["Someone", "someone", "SOMEONE"]
    callers = [asyncio.ensure_future(service.get_widget(name)) for name in spellings]
    for _ in range(100):
        await asyncio.sleep(0.01)
        if aggregator.builds:
            break
    await asyncio.sleep(0.2)
    aggregator.release.set()
    results = await asyncio.gather(*callers)

    assert aggregator.builds == 1
    assert [result.payload["username"] for result in results] == spellings
    assert {result.payload["timestamp"] for result in results} == {1}


@pytest.mark.anyio("asyncio")
async def test_concurrent_misses_share_one_build(database: Database) -> None:
    aggregator = StubAggregator()
    aggregator.release.clear()
    service = _service(database, aggregator, {"value": None})

    callers = [asyncio.ensure_future(service.get_widget("someone")) for _ in range(5)]
    for _ in range(100):
        await asyncio.sleep(0.01)
        if aggregator.builds:
            break
    # Let the remaining callers finish their cache lookups and join.
    await asyncio.sleep(0.2)
    aggregator.release.set()
    results = await asyncio.gather(*callers)

    assert aggregator.builds == 1
    assert {result.cache_status for result in results} == {"MISS"}
    assert all(result.payload == results[0].payload for result in results)


@pytest.mark.anyio("asyncio")
async def test_version_bump_never_serves_old_entry(database: Database) -> None:
    aggregator = StubAggregator()
    version: dict[str, Any] = {"value": "1"}
    service = _service(database, aggregator, version)

    before = await service.get_widget("someone")
    version["value"] = "2"
    after = await service.get_widget("someone")

    assert after.cache_status == "MISS"
    assert after.payload["timestamp"] != before.payload["timestamp"]
    assert aggregator.builds == 2


@pytest.mark.anyio("asyncio")
async def test_failures_are_not_cached(database: Database) -> None:
    aggregator = StubAggregator()
    aggregator.error = UpstreamRateLimited("JIKAN", 429)
    service = _service(database, aggregator, {"value": None})

    with pytest.raises(UpstreamRateLimited):
        await service.get_widget("someone")
    report = await service.cache_report("someone")

    assert report.cached is False
    assert report.cache_key == "https://mal-widget.internal/v1/user/someone"


@pytest.mark.anyio("asyncio")
async def test_purge_evicts_current_version(database: Database) -> None:
    aggregator = StubAggregator()
    service = _service(database, aggregator, {"value": "3"})

    await service.get_widget("someone")
    assert (await service.cache_report("someone")).cached is True

    version, removed = await service.purge("someone")

    assert version == "3"
    assert removed is True
    assert (await service.cache_report("someone")).cached is False
    assert (await service.get_widget("someone")).cache_status == "MISS"
