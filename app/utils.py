"""Utility helpers for the MAL widget service."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping


def normalize_username(value: str) -> str:
    """Return the canonical form used for cache and coalescing keys."""

    return (value or "").strip().casefold()


def coerce_int(value: Any, *, default: int | None = None) -> int | None:
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        pass
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default


def coerce_timestamp(value: Any) -> float | None:
    """Return an epoch timestamp in seconds or ``None`` when unusable."""

    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number:  # NaN
        return None
    return number


def first_present(entry: Mapping[str, Any], keys: Iterable[str]) -> Any:
    """Return the first value among ``keys`` that is present and not null."""

    for key in keys:
        value = entry.get(key)
        if value is not None:
            return value
    return None


def isoformat_utc(moment: datetime) -> str:
    """Format a datetime as UTC ISO-8601 with milliseconds and a ``Z`` suffix."""

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def epoch_to_iso(value: float | None) -> str | None:
    if value is None or value <= 0:
        return None
    try:
        return isoformat_utc(datetime.fromtimestamp(value, tz=timezone.utc))
    except (OverflowError, OSError, ValueError):
        return None


def completion_percent(progress: int | None, total: int | None, *, fallback: int = 0) -> int:
    """Return the rounded half-up ``progress / total`` percentage clamped to 0..100.

    A zero or unknown total never divides; ``fallback`` is used instead.
    """

    if total and total > 0 and progress is not None:
        value = math.floor(progress / total * 100 + 0.5)
    else:
        value = fallback
    return max(0, min(100, int(value)))
