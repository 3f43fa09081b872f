"""Best-effort extraction of recent manga updates from a MAL profile page."""

from __future__ import annotations

import html
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Callable, Sequence

from ..models import MangaActivity
from ..utils import coerce_int, completion_percent, isoformat_utc
from .list_parsers import MAL_URL, RECENT_LIMIT

logger = logging.getLogger(__name__)

MANGA_UPDATES_MARKER = "Last Manga Updates"

SECTION_WINDOW = 25_000
ENTRY_WINDOW = 2_000
GRAPH_MAX_WIDTH = 190

# CDN paths such as /manga/3/image.jpg are skipped.
LINK_RE = re.compile(r"/manga/(\d+)/(?![\w-]*\.\w{2,4}(?:[?#\"<\s]|$))([^\"<\s]*)")
PROGRESS_RE = re.compile(r"<span[^>]*>(\d+)</span>\s*/\s*(\d+|\?)")
DATE_LABEL_RE = re.compile(
    r"(Today|Yesterday|\w{3}\s+\d{1,2}(?:,\s*\d{4})?),\s*(\d{1,2}:\d{2}\s*[AP]M)",
    re.IGNORECASE,
)
CLOCK_RE = re.compile(r"(\d{1,2}):(\d{2})\s*([AP]M)", re.IGNORECASE)
MONTH_DAY_RE = re.compile(r"(\w{3})\s+(\d{1,2})(?:,\s*(\d{4}))?")
GRAPH_RE = re.compile(r"graph-inner[^>]+style=\"width:(\d+)px\"")

Strategy = Callable[[str], "str | None"]


def _pattern(regex: str, flags: int = 0) -> Strategy:
    compiled = re.compile(regex, flags)

    def extract(block: str) -> str | None:
        match = compiled.search(block)
        return match.group(1) if match else None

    return extract


TITLE_STRATEGIES: Sequence[Strategy] = (
    _pattern(r"/manga/\d+/[^\"]+\">([^<]{2,200})</a>"),
    _pattern(r"(?:title|aria-label)=\"([^\"]{2,200})\""),
    _pattern(r"<strong[^>]*>([^<]{2,200})</strong>"),
)

# Profile images are lazy loaded, so data-src carries the real URL.
IMAGE_STRATEGIES: Sequence[Strategy] = (
    _pattern(r"data-src=\"(https://cdn\.myanimelist\.net/r/[^\"]+)\""),
    _pattern(r"src=\"(https://cdn\.myanimelist\.net/r/[^\"]+)\""),
)

STATUS_STRATEGIES: Sequence[Strategy] = (
    _pattern(r"(Reading|Completed|On-Hold|Dropped|Plan to Read)"),
)


def first_match(strategies: Sequence[Strategy], block: str) -> str | None:
    """Evaluate ``strategies`` in order and return the first hit."""

    for strategy in strategies:
        try:
            value = strategy(block)
        except (re.error, IndexError):
            continue
        if value:
            return value
    return None


def parse_date_label(label: str, clock: str, *, now: datetime) -> str | None:
    """Turn ``Today``/``Yesterday``/``Feb 26[, 2024]`` plus a 12h clock into ISO."""

    clock_match = CLOCK_RE.search(clock)
    if not clock_match:
        return None
    hour = int(clock_match.group(1))
    minute = int(clock_match.group(2))
    if not 1 <= hour <= 12 or minute > 59:
        return None
    hour = hour % 12
    if clock_match.group(3).upper() == "PM":
        hour += 12

    lowered = label.strip().lower()
    if lowered == "today":
        day = now.date()
    elif lowered == "yesterday":
        day = (now - timedelta(days=1)).date()
    else:
        date_match = MONTH_DAY_RE.search(label)
        if not date_match:
            return None
        month, day_of_month, year = date_match.groups()
        try:
            day = datetime.strptime(
                f"{month.title()} {day_of_month} {year or now.year}", "%b %d %Y"
            ).date()
        except ValueError:
            return None

    moment = datetime(day.year, day.month, day.day, hour, minute, tzinfo=now.tzinfo)
    return isoformat_utc(moment)


def _slug_title(slug: str) -> str | None:
    title = slug.rsplit("/", 1)[-1].replace("_", " ").strip()
    return title or None


def _graph_percent(block: str) -> int:
    match = GRAPH_RE.search(block)
    if not match:
        return 0
    return completion_percent(int(match.group(1)), GRAPH_MAX_WIDTH)


def _build_entry(mal_id: int, slug: str, block: str, *, now: datetime) -> MangaActivity:
    title = first_match(TITLE_STRATEGIES, block)
    title = html.unescape(title).strip() if title else _slug_title(slug)

    progress: int | None = None
    total = 0
    progress_match = PROGRESS_RE.search(block)
    if progress_match:
        progress = coerce_int(progress_match.group(1))
        if progress_match.group(2) != "?":
            total = coerce_int(progress_match.group(2), default=0) or 0

    updated_at = None
    label_match = DATE_LABEL_RE.search(block)
    if label_match:
        updated_at = parse_date_label(label_match.group(1), label_match.group(2), now=now)

    if total > 0 and progress is not None:
        percent = completion_percent(progress, total)
    else:
        percent = _graph_percent(block)

    return MangaActivity(
        mal_id=mal_id,
        title=title,
        url=f"{MAL_URL}/manga/{mal_id}",
        image=first_match(IMAGE_STRATEGIES, block),
        status=first_match(STATUS_STRATEGIES, block),
        progress=progress,
        total_chapters=total,
        percent_complete=percent,
        updated_at=updated_at,
    )


def scrape_recent_updates(
    document: str,
    marker: str = MANGA_UPDATES_MARKER,
    *,
    now: datetime | None = None,
) -> list[MangaActivity]:
    """Extract up to three recent manga updates following ``marker``.

    Missing fields degrade to ``None``. A missing marker, or any failure
    while scanning, yields an empty list.
    """

    if not document or not marker:
        return []
    start = document.find(marker)
    if start == -1:
        logger.info("Marker %r not found in profile document", marker)
        return []

    reference = now or datetime.now(timezone.utc)
    section = document[start : start + SECTION_WINDOW]
    entries: list[MangaActivity] = []
    seen: set[int] = set()
    try:
        for match in LINK_RE.finditer(section):
            mal_id = coerce_int(match.group(1))
            if not mal_id or mal_id in seen:
                continue
            seen.add(mal_id)
            block = section[match.start() : match.start() + ENTRY_WINDOW]
            entries.append(_build_entry(mal_id, match.group(2), block, now=reference))
            if len(entries) >= RECENT_LIMIT:
                break
    except Exception:
        logger.exception("Profile scrape failed after %s entries", len(entries))
        return []
    return entries
