"""Entry point for the FastAPI-powered MAL widget backend."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from functools import partial
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from .cache import ResponseCache
from .config import current_cache_version, settings
from .database import Database
from .errors import UpstreamError
from .services.aggregator import WidgetAggregator
from .services.cache_keys import CacheKeyManager
from .services.fetcher import TimeoutFetcher
from .services.jikan import JikanClient
from .services.mal import MalClient
from .services.profile_scraper import MANGA_UPDATES_MARKER
from .services.widget import WidgetService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    mal_http = await exit_stack.enter_async_context(
        httpx.AsyncClient(follow_redirects=True, timeout=httpx.Timeout(20.0, connect=10.0))
    )
    jikan_http = await exit_stack.enter_async_context(
        httpx.AsyncClient(timeout=httpx.Timeout(20.0, connect=10.0))
    )
    database = Database(settings.database_url)
    await database.create_all()

    mal_client = MalClient(
        TimeoutFetcher(mal_http, timeout=settings.fetch_timeout_seconds),
        str(settings.mal_base_url),
    )
    jikan_client = JikanClient(
        TimeoutFetcher(jikan_http, timeout=settings.fetch_timeout_seconds),
        str(settings.jikan_api_url),
    )
    widget_service = WidgetService(
        WidgetAggregator(mal_client, jikan_client),
        ResponseCache(
            database.session_factory, ttl_seconds=settings.cache_ttl_seconds
        ),
        CacheKeyManager(
            settings.cache_namespace, partial(current_cache_version, settings)
        ),
    )

    fastapi_app.state.widget_service = widget_service
    fastapi_app.state.mal_client = mal_client
    fastapi_app.state.database = database

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="MyAnimeList profile widget backed by MAL lists and Jikan",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_widget_service(app: FastAPI) -> WidgetService:
    service = getattr(app.state, "widget_service", None)
    if not isinstance(service, WidgetService):
        raise RuntimeError("Widget service not initialised")
    return service


def get_mal_client(app: FastAPI) -> MalClient:
    client = getattr(app.state, "mal_client", None)
    if not isinstance(client, MalClient):
        raise RuntimeError("MAL client not initialised")
    return client


def _json_response(
    payload: dict[str, Any],
    *,
    status_code: int = 200,
    cache_status: str | None = None,
) -> JSONResponse:
    headers = {"Cache-Control": f"public, max-age={settings.cache_ttl_seconds}"}
    if cache_status:
        headers["X-Cache"] = cache_status
    return JSONResponse(payload, status_code=status_code, headers=headers)


def _error_response(exc: UpstreamError) -> JSONResponse:
    return _json_response(exc.to_payload(), status_code=exc.status_code)


def register_routes(fastapi_app: FastAPI) -> None:
    async def _widget_endpoint(username: str | None) -> Response:
        username = (username or "").strip()
        if not username:
            raise HTTPException(status_code=400, detail="No username provided")
        service = get_widget_service(fastapi_app)
        try:
            result = await service.get_widget(username)
        except UpstreamError as exc:
            logger.warning(
                "Widget build for %s failed (%s): %s", username, exc.kind, exc
            )
            return _error_response(exc)
        return _json_response(result.payload, cache_status=result.cache_status)

    @fastapi_app.get("/health", response_class=PlainTextResponse)
    async def healthcheck() -> str:
        return "OK"

    @fastapi_app.get("/favicon.ico")
    async def favicon() -> Response:
        return Response(status_code=204)

    @fastapi_app.get("/")
    async def root(username: str | None = None) -> Response:
        if not username:
            return Response(status_code=204)
        return await _widget_endpoint(username)

    @fastapi_app.get("/purge")
    async def purge_without_username() -> Response:
        raise HTTPException(status_code=400, detail="No username provided")

    @fastapi_app.get("/purge/{username}")
    async def purge(username: str) -> JSONResponse:
        service = get_widget_service(fastapi_app)
        if username == "all":
            return _json_response(
                {"message": "Global purge requires a cache version bump"}
            )
        version, removed = await service.purge(username)
        return _json_response(
            {
                "message": "Purged cache for user",
                "username": username,
                "cache_version": version,
                "removed": removed,
            }
        )

    @fastapi_app.get("/debug-cache")
    async def debug_cache(username: str | None = None) -> JSONResponse:
        if not username:
            raise HTTPException(
                status_code=400, detail="username query param required"
            )
        service = get_widget_service(fastapi_app)
        report = await service.cache_report(username)
        return _json_response(report.to_payload())

    @fastapi_app.get("/debug-profile/{username}", response_class=PlainTextResponse)
    async def debug_profile(username: str) -> str:
        document = await get_mal_client(fastapi_app).fetch_profile_page(username)
        if document is None:
            return "Profile page could not be fetched."
        index = document.find(MANGA_UPDATES_MARKER)
        if index == -1:
            return (
                f"NOT FOUND. Total HTML length: {len(document)}\n"
                f"First 500 chars:\n{document[:500]}"
            )
        return f"FOUND at index {index}:\n{document[index:index + 3000]}"

    @fastapi_app.get("/{path:path}")
    async def widget(path: str, username: str | None = None) -> Response:
        segments = [segment for segment in path.split("/") if segment]
        return await _widget_endpoint(segments[-1] if segments else username)


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
