"""Utilities for communicating with the Jikan v4 API."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

from ..errors import UpstreamGenericFailure
from .fetcher import TimeoutFetcher


class JikanClient:
    """Profile, statistics and favorites lookups.

    Failures are raised as :class:`~app.errors.UpstreamError` variants; it is
    up to the caller to decide which sections may degrade.
    """

    SOURCE = "JIKAN"

    def __init__(self, fetcher: TimeoutFetcher, base_url: str = "https://api.jikan.moe/v4"):
        self._fetcher = fetcher
        self._base_url = base_url.rstrip("/")

    def _user_url(self, username: str, resource: str) -> str:
        return f"{self._base_url}/users/{quote(username, safe='')}/{resource}"

    async def _fetch_data(self, username: str, resource: str) -> dict[str, Any]:
        payload = await self._fetcher.get_json(
            self._user_url(username, resource), source=self.SOURCE
        )
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise UpstreamGenericFailure(
                self.SOURCE, f"{self.SOURCE} {resource} response has no data object"
            )
        return data

    async def fetch_statistics(self, username: str) -> dict[str, Any]:
        return await self._fetch_data(username, "statistics")

    async def fetch_profile(self, username: str) -> dict[str, Any]:
        return await self._fetch_data(username, "full")

    async def fetch_favorites(self, username: str) -> dict[str, Any]:
        return await self._fetch_data(username, "favorites")
