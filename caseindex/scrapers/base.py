from __future__ import annotations

from dataclasses import dataclass

import httpx
from loguru import logger

from caseindex.errors import TransientNetworkError, UpstreamHttpError


@dataclass(frozen=True)
class FetchedPage:
    """Raw 2xx portal response."""

    url: str
    status_code: int
    text: str


def browser_headers(user_agent: str) -> dict[str, str]:
    return {
        "User-Agent": user_agent,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
        "Upgrade-Insecure-Requests": "1",
    }


class BaseScraper:
    def __init__(self, source_name: str):
        self.source_name = source_name

    def check_response(self, resp: httpx.Response) -> FetchedPage:
        """
        Turn a portal response into a ``FetchedPage`` or a typed error.
        """
        url = str(resp.request.url) if resp.request is not None else ""
        # Simple heuristics for bot walls
        blocked = resp.status_code == 403 or "Access Denied" in resp.text[:2000]
        if blocked or not resp.is_success:
            logger.warning(f"{self.source_name} returned HTTP {resp.status_code} for {url}")
            raise UpstreamHttpError(resp.status_code, url, blocked=blocked)
        return FetchedPage(url=url, status_code=resp.status_code, text=resp.text)

    def translate_error(self, exc: httpx.HTTPError, url: str) -> TransientNetworkError:
        if isinstance(exc, httpx.TimeoutException):
            logger.warning(f"Timeout fetching {self.source_name}: {url}")
            return TransientNetworkError(f"Timeout fetching {url}")
        logger.warning(f"Network error fetching {self.source_name}: {exc}")
        return TransientNetworkError(f"{type(exc).__name__} fetching {url}: {exc}")
