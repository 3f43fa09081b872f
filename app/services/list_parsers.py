"""Parsers turning MAL ``load.json`` list rows into recent activity entries."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, Literal, Sequence, TypeVar

from ..models import ActivityEntry, AnimeActivity, MangaActivity
from ..utils import (
    coerce_int,
    coerce_timestamp,
    completion_percent,
    epoch_to_iso,
    first_present,
)

RECENT_LIMIT = 3
MAL_URL = "https://myanimelist.net"

SortField = Literal["updated_at", "created_at"]

ANIME_PROGRESS_KEYS = ("num_watched_episodes", "num_episodes_watched", "watched_episodes")
MANGA_PROGRESS_KEYS = ("num_read_chapters", "num_chapters_read", "read_chapters")

EntryT = TypeVar("EntryT", bound=ActivityEntry)


@dataclass
class ParsedRecent(Generic[EntryT]):
    """Parsed entries plus the timestamp field they were ordered by.

    ``sorted_by == "created_at"`` marks a low-confidence result: creation
    time only says when an item was added, not when it was last touched.
    """

    entries: list[EntryT] = field(default_factory=list)
    sorted_by: SortField | None = None

    @property
    def low_confidence(self) -> bool:
        return self.sorted_by == "created_at"


def _select_recent(
    rows: Any,
) -> tuple[list[tuple[float, dict[str, Any]]], SortField | None]:
    if not isinstance(rows, list):
        return [], None
    candidates = [row for row in rows if isinstance(row, dict)]
    if not candidates:
        return [], None

    has_updated = any(row.get("updated_at") is not None for row in candidates)
    sort_field: SortField = "updated_at" if has_updated else "created_at"

    stamped: list[tuple[float, dict[str, Any]]] = []
    for row in candidates:
        stamp = coerce_timestamp(row.get(sort_field))
        if stamp is None:
            continue
        stamped.append((stamp, row))
    stamped.sort(key=lambda pair: pair[0], reverse=True)
    return stamped[:RECENT_LIMIT], sort_field


def _progress(row: dict[str, Any], keys: Sequence[str]) -> int:
    value = coerce_int(first_present(row, keys), default=0) or 0
    return max(0, value)


def _total(row: dict[str, Any], key: str) -> int:
    value = coerce_int(row.get(key), default=0) or 0
    return max(0, value)


def _score(row: dict[str, Any]) -> float:
    try:
        return float(row.get("score") or 0)
    except (TypeError, ValueError):
        return 0.0


def parse_recent_anime(rows: Any) -> ParsedRecent[AnimeActivity]:
    """Return the three most recently updated anime rows, newest first."""

    selected, sort_field = _select_recent(rows)
    entries: list[AnimeActivity] = []
    for stamp, row in selected:
        anime_id = coerce_int(row.get("anime_id"))
        episodes = _progress(row, ANIME_PROGRESS_KEYS)
        total = _total(row, "anime_num_episodes")
        entries.append(
            AnimeActivity(
                mal_id=anime_id or None,
                title=str(row["anime_title"]) if row.get("anime_title") else None,
                url=f"{MAL_URL}/anime/{anime_id}" if anime_id else None,
                image=str(row["anime_image_path"]) if row.get("anime_image_path") else None,
                progress=episodes,
                total_episodes=total,
                score=_score(row),
                updated_at=epoch_to_iso(stamp),
                percent_complete=completion_percent(episodes, total),
            )
        )
    return ParsedRecent(entries=entries, sorted_by=sort_field)


def parse_recent_manga(rows: Any) -> ParsedRecent[MangaActivity]:
    """Return the three most recently updated manga rows, newest first."""

    selected, sort_field = _select_recent(rows)
    entries: list[MangaActivity] = []
    for stamp, row in selected:
        manga_id = coerce_int(row.get("manga_id"))
        chapters = _progress(row, MANGA_PROGRESS_KEYS)
        total = _total(row, "manga_num_chapters")
        title = first_present(row, ("manga_title", "manga_english"))
        entries.append(
            MangaActivity(
                mal_id=manga_id or None,
                title=str(title) if title is not None else None,
                url=f"{MAL_URL}/manga/{manga_id}" if manga_id else None,
                image=str(row["manga_image_path"]) if row.get("manga_image_path") else None,
                progress=chapters,
                total_chapters=total,
                score=_score(row),
                updated_at=epoch_to_iso(stamp),
                percent_complete=completion_percent(chapters, total),
            )
        )
    return ParsedRecent(entries=entries, sorted_by=sort_field)
