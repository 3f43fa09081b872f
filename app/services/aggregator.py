"""High level orchestration of the upstream tiers into one widget payload."""

from __future__ import annotations

import logging
import time
from typing import Any

from pydantic import ValidationError

from ..errors import UpstreamError, UpstreamGenericFailure
from ..models import (
    AggregatePayload,
    AnimeActivity,
    Favorites,
    MangaActivity,
    RecentUpdates,
    Statistics,
    UserProfile,
)
from .jikan import JikanClient
from .list_parsers import parse_recent_anime, parse_recent_manga
from .mal import MalClient
from .profile_scraper import MANGA_UPDATES_MARKER, scrape_recent_updates

logger = logging.getLogger(__name__)

FAVORITES_LIMIT = 10


class WidgetAggregator:
    """Composes MAL lists, the profile scraper and Jikan into a payload.

    Statistics and profile are required: their failures propagate and the
    whole payload is abandoned. Recent updates and favorites only degrade.
    """

    def __init__(self, mal_client: MalClient, jikan_client: JikanClient):
        self._mal = mal_client
        self._jikan = jikan_client

    async def recent_anime(self, username: str) -> list[AnimeActivity]:
        rows = await self._mal.fetch_list("anime", username)
        return parse_recent_anime(rows).entries

    async def recent_manga(self, username: str) -> list[MangaActivity]:
        """Structured list first; scrape the profile when it is empty or untrustworthy."""

        rows = await self._mal.fetch_list("manga", username)
        parsed = parse_recent_manga(rows)
        if parsed.entries and not parsed.low_confidence:
            return parsed.entries

        if parsed.low_confidence:
            logger.info(
                "Manga list for %s only carries creation timestamps; scraping profile",
                username,
            )
        document = await self._mal.fetch_profile_page(username)
        if not document:
            return []
        return scrape_recent_updates(document, MANGA_UPDATES_MARKER)

    async def favorites(self, username: str) -> Favorites:
        try:
            data = await self._jikan.fetch_favorites(username)
        except UpstreamError as exc:
            logger.info("Favorites unavailable for %s: %s", username, exc)
            return Favorites()
        return Favorites(
            anime=_summaries(data.get("anime"))[:FAVORITES_LIMIT],
            manga=_summaries(data.get("manga"))[:FAVORITES_LIMIT],
        )

    async def build(self, username: str) -> AggregatePayload:
        """Run every tier for ``username``; required-section errors propagate."""

        recent_anime = await self.recent_anime(username)
        recent_manga = await self.recent_manga(username)

        stats = await self._jikan.fetch_statistics(username)
        profile = await self._jikan.fetch_profile(username)
        favorites = await self.favorites(username)

        try:
            user_profile = UserProfile.from_jikan(profile)
            statistics = Statistics(
                anime=_block(stats.get("anime")),
                manga=_block(stats.get("manga")),
            )
        except (ValidationError, TypeError, AttributeError) as exc:
            raise UpstreamGenericFailure(
                "JIKAN", f"JIKAN returned an unexpected profile body: {exc}"
            ) from exc

        return AggregatePayload(
            username=username,
            profile=user_profile,
            statistics=statistics,
            favorites=favorites,
            recent_updates=RecentUpdates(anime=recent_anime, manga=recent_manga),
            timestamp=int(time.time() * 1000),
        )


def _block(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _summaries(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]
