"""Error taxonomy for upstream failures."""

from __future__ import annotations

from typing import Any, ClassVar


class UpstreamError(Exception):
    """Base class for failures of a required upstream section.

    Each subclass is one closed variant of the taxonomy and carries the
    upstream ``source`` label plus the HTTP ``status`` when one was received.
    """

    kind: ClassVar[str] = "upstream_error"
    status_code: ClassVar[int] = 500
    title: ClassVar[str] = "Failed to fetch data"

    def __init__(self, source: str, message: str, *, status: int | None = None):
        super().__init__(message)
        self.source = source
        self.status = status

    @property
    def message(self) -> str:
        return str(self)

    def to_payload(self) -> dict[str, Any]:
        """Return the structured error body sent to callers."""

        return {
            "error": self.title,
            "kind": self.kind,
            "message": self.message,
            "source": self.source,
            "status": self.status,
        }


class UpstreamRateLimited(UpstreamError):
    """The upstream answered with 429 or a server error."""

    kind = "rate_limited"
    status_code = 503

    def __init__(self, source: str, status: int):
        super().__init__(
            source, f"{source} rate limit or error ({status})", status=status
        )

    @property
    def title(self) -> str:  # type: ignore[override]
        return f"{self.source} rate limit hit"


class UpstreamTimeout(UpstreamError):
    """No response arrived before the fetch deadline."""

    kind = "timeout"
    status_code = 504
    title = "Upstream timeout"

    def __init__(self, source: str, url: str, timeout: float):
        super().__init__(source, f"{source} did not respond within {timeout:g}s")
        self.url = url
        self.timeout = timeout


class UpstreamGenericFailure(UpstreamError):
    """Any other non-success status or unexpected body from a required section."""

    kind = "upstream_failure"
    status_code = 500
