"""Tests for the deadline-bounded fetcher and the MAL/Jikan clients."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from app.errors import UpstreamGenericFailure, UpstreamRateLimited, UpstreamTimeout
from app.services.fetcher import TimeoutFetcher


@pytest.mark.anyio("asyncio")
async def test_fetcher_raises_timeout_and_cancels_request() -> None:
    """A stalled upstream is abandoned at the deadline."""

    cancelled = asyncio.Event()

    async def handler(_: httpx.Request) -> httpx.Response:
        try:
            await asyncio.sleep(5)
        except asyncio.CancelledError:
            cancelled.set()
            raise
        return httpx.Response(200)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        fetcher = TimeoutFetcher(http_client, timeout=0.05)
        with pytest.raises(UpstreamTimeout) as excinfo:
            await fetcher.get("https://slow.example.com/", source="SLOW")

    assert cancelled.is_set()
    assert excinfo.value.source == "SLOW"
    assert excinfo.value.status_code == 504
    assert excinfo.value.to_payload()["kind"] == "timeout"


@pytest.mark.anyio("asyncio")
@pytest.mark.parametrize("status", [429, 500, 503])
async def test_get_json_classifies_rate_limits(status: int) -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json={"error": "busy"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        fetcher = TimeoutFetcher(http_client)
        with pytest.raises(UpstreamRateLimited) as excinfo:
            await fetcher.get_json("https://api.example.com/", source="JIKAN")

    assert excinfo.value.status == status
    assert excinfo.value.status_code == 503
    assert excinfo.value.to_payload()["error"] == "JIKAN rate limit hit"


@pytest.mark.anyio("asyncio")
async def test_get_json_classifies_other_failures() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/missing":
            return httpx.Response(404, json={"error": "not found"})
        return httpx.Response(200, text="<html>oops</html>")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        fetcher = TimeoutFetcher(http_client)
        with pytest.raises(UpstreamGenericFailure) as missing:
            await fetcher.get_json("https://api.example.com/missing", source="JIKAN")
        with pytest.raises(UpstreamGenericFailure):
            await fetcher.get_json("https://api.example.com/html", source="JIKAN")

    assert missing.value.status == 404
    assert "404" in missing.value.message


@pytest.mark.anyio("asyncio")
async def test_get_json_wraps_transport_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        fetcher = TimeoutFetcher(http_client)
        with pytest.raises(UpstreamGenericFailure, match="ConnectError"):
            await fetcher.get_json("https://api.example.com/", source="JIKAN")


@pytest.mark.anyio("asyncio")
async def test_mal_list_requests_all_statuses(make_clients) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=[{"anime_id": 1}])

    http_client, mal, _ = make_clients(handler)
    async with http_client:
        rows = await mal.fetch_list("anime", "Some User")

    assert rows == [{"anime_id": 1}]
    assert requests[0].url.raw_path.startswith(b"/animelist/Some%20User/load.json")
    assert requests[0].url.params["offset"] == "0"
    assert requests[0].url.params["status"] == "7"


@pytest.mark.anyio("asyncio")
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="<html>maintenance</html>", headers={"content-type": "text/html"}),
        httpx.Response(200, json={"errors": []}),
        httpx.Response(400, json={"errors": []}),
        httpx.Response(503, json=[]),
    ],
)
async def test_mal_list_soft_failures_return_empty(make_clients, response: httpx.Response) -> None:
    http_client, mal, _ = make_clients(lambda _: response)
    async with http_client:
        assert await mal.fetch_list("manga", "someone") == []


@pytest.mark.anyio("asyncio")
async def test_mal_profile_page_sends_browser_headers(make_clients) -> None:
    seen: dict[str, str] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(request.headers)
        return httpx.Response(200, text="<html>profile</html>")

    http_client, mal, _ = make_clients(handler)
    async with http_client:
        document = await mal.fetch_profile_page("someone")

    assert document == "<html>profile</html>"
    assert "Mozilla/5.0" in seen["user-agent"]
    assert seen["pragma"] == "no-cache"


@pytest.mark.anyio("asyncio")
async def test_mal_profile_page_timeout_is_soft(make_clients) -> None:
    async def handler(_: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return httpx.Response(200)

    http_client, mal, _ = make_clients(handler, timeout=0.05)
    async with http_client:
        assert await mal.fetch_profile_page("someone") is None


@pytest.mark.anyio("asyncio")
async def test_jikan_requires_data_envelope(make_clients) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/statistics"):
            return httpx.Response(200, json={"data": {"anime": {"days_watched": 1}}})
        return httpx.Response(200, json={"message": "no data"})

    http_client, _, jikan = make_clients(handler)
    async with http_client:
        stats = await jikan.fetch_statistics("someone")
        with pytest.raises(UpstreamGenericFailure):
            await jikan.fetch_profile("someone")

    assert stats == {"anime": {"days_watched": 1}}
