"""Deadline-bounded outbound requests shared by the upstream clients."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping

import httpx

from ..errors import UpstreamGenericFailure, UpstreamRateLimited, UpstreamTimeout

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 8.0


class TimeoutFetcher:
    """Issue single GET requests that never outlive a hard deadline.

    The deadline covers the whole exchange, body included. When it expires
    the pending request is cancelled, which closes its connection, and
    :class:`UpstreamTimeout` is raised instead.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self._client = http_client
        self._timeout = timeout

    @property
    def timeout(self) -> float:
        return self._timeout

    async def get(
        self,
        url: str,
        *,
        source: str = "upstream",
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> httpx.Response:
        """Return the raw response or raise :class:`UpstreamTimeout`."""

        try:
            return await asyncio.wait_for(
                self._client.get(url, headers=headers, params=params),
                timeout=self._timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            logger.warning("%s request to %s timed out after %.1fs", source, url, self._timeout)
            raise UpstreamTimeout(source, url, self._timeout) from exc

    async def get_json(
        self,
        url: str,
        *,
        source: str,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        """Fetch a required JSON resource and classify failures.

        429 and 5xx responses raise :class:`UpstreamRateLimited`; any other
        non-success status, transport error or undecodable body raises
        :class:`UpstreamGenericFailure`. Nothing is retried.
        """

        try:
            response = await self.get(url, source=source, headers=headers)
        except httpx.HTTPError as exc:
            raise UpstreamGenericFailure(
                source, f"{source} request failed: {exc.__class__.__name__}"
            ) from exc

        status = response.status_code
        if status == 429 or status >= 500:
            raise UpstreamRateLimited(source, status)
        if status >= 400:
            raise UpstreamGenericFailure(
                source, f"{source} fetch failed ({status})", status=status
            )
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamGenericFailure(
                source, f"{source} returned a non-JSON body", status=status
            ) from exc
