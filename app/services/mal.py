"""Clients for the public MyAnimeList list endpoints and profile pages."""

from __future__ import annotations

import logging
from typing import Any, Literal
from urllib.parse import quote

import httpx

from ..errors import UpstreamError
from .fetcher import TimeoutFetcher

logger = logging.getLogger(__name__)

ListKind = Literal["anime", "manga"]

# Every list status (watching, completed, on hold, dropped, planned).
ALL_STATUSES = 7

# MAL rejects headless clients on profile pages.
BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
    ),
    "Accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,"
        "image/avif,image/webp,*/*;q=0.8"
    ),
    "Accept-Language": "en-US,en;q=0.5",
    "Accept-Encoding": "gzip, deflate, br",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}


class MalClient:
    """Thin wrapper around MyAnimeList's unauthenticated endpoints.

    Both methods are soft: any failure is logged and reported as an empty
    result so callers can fall through to the next tier.
    """

    SOURCE = "MAL"

    def __init__(self, fetcher: TimeoutFetcher, base_url: str = "https://myanimelist.net"):
        self._fetcher = fetcher
        self._base_url = base_url.rstrip("/")

    def list_url(self, kind: ListKind, username: str, *, offset: int = 0) -> str:
        return (
            f"{self._base_url}/{kind}list/{quote(username, safe='')}/load.json"
            f"?offset={offset}&status={ALL_STATUSES}"
        )

    def profile_url(self, username: str) -> str:
        return f"{self._base_url}/profile/{quote(username, safe='')}"

    async def fetch_list(self, kind: ListKind, username: str) -> list[Any]:
        """Return the raw ``load.json`` rows for a user's list, or ``[]``."""

        url = self.list_url(kind, username)
        try:
            response = await self._fetcher.get(url, source=self.SOURCE)
        except (UpstreamError, httpx.HTTPError) as exc:
            logger.info("MAL %s list unavailable for %s: %s", kind, username, exc)
            return []

        if response.status_code >= 400:
            logger.info(
                "MAL %s list for %s returned %s", kind, username, response.status_code
            )
            return []
        content_type = response.headers.get("content-type", "")
        if "application/json" not in content_type:
            logger.info(
                "MAL %s list for %s is not JSON (%s)", kind, username, content_type or "none"
            )
            return []
        try:
            data = response.json()
        except ValueError:
            logger.warning("Undecodable MAL %s list for %s", kind, username)
            return []
        if not isinstance(data, list):
            logger.warning("Unexpected MAL %s list structure for %s", kind, username)
            return []
        return data

    async def fetch_profile_page(self, username: str) -> str | None:
        """Return the public profile HTML, or ``None`` when it cannot be read."""

        url = self.profile_url(username)
        try:
            response = await self._fetcher.get(
                url, source=self.SOURCE, headers=BROWSER_HEADERS
            )
        except (UpstreamError, httpx.HTTPError) as exc:
            logger.info("MAL profile page unavailable for %s: %s", username, exc)
            return None
        if response.status_code >= 400:
            logger.info(
                "MAL profile page for %s returned %s", username, response.status_code
            )
            return None
        return response.text
