"""Versioned cache keys for per-user widget payloads."""

from __future__ import annotations

from typing import Callable
from urllib.parse import quote

from ..config import DEFAULT_CACHE_VERSION
from ..utils import normalize_username


def resolve_cache_version(configured: object) -> str:
    """Return the configured version, or the default when blank or missing."""

    if configured is None:
        return DEFAULT_CACHE_VERSION
    return str(configured).strip() or DEFAULT_CACHE_VERSION


class CacheKeyManager:
    """Derives ``{namespace}/v{version}/user/{username}`` keys.

    The version is looked up on every call. Bumping it moves every user to a
    fresh key space, so older entries are simply never addressed again.
    """

    def __init__(self, namespace: str, version_source: Callable[[], object]):
        self._namespace = namespace.rstrip("/")
        self._version_source = version_source

    def version(self) -> str:
        return resolve_cache_version(self._version_source())

    def key_for(self, username: str, *, version: str | None = None) -> str:
        resolved = version if version is not None else self.version()
        normalized = quote(normalize_username(username), safe="")
        return f"{self._namespace}/v{resolved}/user/{normalized}"
