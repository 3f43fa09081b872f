"""Pytest configuration and test helpers."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable

import httpx
import pytest


# Ensure the application package is importable when running tests without an
# editable install.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.services.fetcher import TimeoutFetcher  # noqa: E402
from app.services.jikan import JikanClient  # noqa: E402
from app.services.mal import MalClient  # noqa: E402

MAL_BASE = "https://mal.example.com"
JIKAN_BASE = "https://jikan.example.com/v4"

Handler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


def build_clients(
    handler: Handler, *, timeout: float = 8.0
) -> tuple[httpx.AsyncClient, MalClient, JikanClient]:
    """Return MAL and Jikan clients sharing one mocked transport."""

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    fetcher = TimeoutFetcher(http_client, timeout=timeout)
    return http_client, MalClient(fetcher, MAL_BASE), JikanClient(fetcher, JIKAN_BASE)


@pytest.fixture
def make_clients() -> Callable[..., tuple[httpx.AsyncClient, MalClient, JikanClient]]:
    return build_clients
