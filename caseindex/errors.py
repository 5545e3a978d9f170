"""Exception taxonomy for the court-records engine."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from caseindex.models import SearchResult


class CourtDataError(Exception):
    """Base class for every engine error."""


class ConfigurationError(CourtDataError):
    """Raised when engine settings cannot be parsed."""


class UnknownSourceError(CourtDataError, KeyError):
    """Raised when a rate-limit source key has no configured budget."""

    def __init__(self, source_key: str):
        super().__init__(source_key)
        self.source_key = source_key

    def __str__(self) -> str:
        return f"No rate limit configured for source {self.source_key!r}"


class TransientNetworkError(CourtDataError):
    """Connection reset, DNS failure or timeout talking to the portal."""


class UpstreamHttpError(CourtDataError):
    """Portal answered with a non-2xx status."""

    def __init__(self, status_code: int, url: str, blocked: bool = False):
        label = "blocked" if blocked else "error"
        super().__init__(f"HTTP {status_code} ({label}) from {url}")
        self.status_code = status_code
        self.url = url
        self.blocked = blocked


class NormalizationError(CourtDataError, ValueError):
    """A mandatory field (the case number) is missing after extraction."""


class DeadlineExceeded(CourtDataError):
    """The caller-supplied deadline expired mid-call."""


class CaseLookupFailed(CourtDataError):
    """Raised by the facade when a lookup ends in ``Failed``."""

    def __init__(self, message: str, result: SearchResult | None = None):
        super().__init__(message)
        self.result = result


class RateLimitExceeded(CaseLookupFailed):
    """Every admission retry for the needed sources was denied."""

    def __init__(
        self,
        source_key: str,
        retry_after: float | None = None,
        result: SearchResult | None = None,
    ):
        hint = f", retry after {retry_after:.1f}s" if retry_after is not None else ""
        super().__init__(f"Rate limit exhausted for {source_key}{hint}", result=result)
        self.source_key = source_key
        self.retry_after = retry_after
