"""
HTTP client for the San Diego Superior Court public portals.

Four subsystems serve overlapping data: the main sdcourt.ca.gov case search,
ROASearch, ODYROA and CourtIndex. Each lookup strategy below names one
endpoint on one subsystem; the router walks them in order. The client itself
does no rate limiting, that is the router's job.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

import httpx
from loguru import logger

from caseindex.config import (
    CALENDAR_PATH,
    CASE_SEARCH_PATH,
    CONNECT_TIMEOUT_SECONDS,
    COURTINDEX_BASE_URL,
    DEFAULT_USER_AGENT,
    FETCH_TIMEOUT_SECONDS,
    ODYROA_BASE_URL,
    ROASEARCH_BASE_URL,
    SDCOURT_BASE_URL,
    SOURCE_COURTINDEX,
    SOURCE_ODYROA,
    SOURCE_ROASEARCH,
    SOURCE_SDCOURT,
)
from caseindex.errors import CourtDataError
from caseindex.models import DocumentKind, QueryKind
from caseindex.scrapers.base import BaseScraper, FetchedPage, browser_headers


@dataclass(frozen=True)
class Strategy:
    """One endpoint on one portal subsystem."""

    key: str
    source_key: str
    base_url: str
    path: str
    param_name: str
    document_kind: DocumentKind
    landing_path: str = "/"
    fixed_params: tuple[tuple[str, str], ...] = ()

    @property
    def url(self) -> str:
        return f"{self.base_url}{self.path}"

    @property
    def referer(self) -> str:
        return f"{self.base_url}{self.landing_path}"

    def params_for(self, text: str) -> dict[str, str]:
        params = dict(self.fixed_params)
        params[self.param_name] = text
        return params


CASE_NUMBER_STRATEGIES: tuple[Strategy, ...] = (
    Strategy(
        key="sdcourt_case_detail",
        source_key=SOURCE_SDCOURT,
        base_url=SDCOURT_BASE_URL,
        path=CASE_SEARCH_PATH,
        param_name="caseNumber",
        document_kind=DocumentKind.CASE_DETAIL,
        landing_path=CASE_SEARCH_PATH,
    ),
    Strategy(
        key="roasearch_case",
        source_key=SOURCE_ROASEARCH,
        base_url=ROASEARCH_BASE_URL,
        path="/Parties",
        param_name="caseNumber",
        document_kind=DocumentKind.CASE_DETAIL,
    ),
    Strategy(
        key="odyroa_case",
        source_key=SOURCE_ODYROA,
        base_url=ODYROA_BASE_URL,
        path="/Parties",
        param_name="caseNumber",
        document_kind=DocumentKind.CASE_DETAIL,
    ),
    Strategy(
        key="courtindex_case",
        source_key=SOURCE_COURTINDEX,
        base_url=COURTINDEX_BASE_URL,
        path="/Parties",
        param_name="caseNumber",
        document_kind=DocumentKind.SEARCH_RESULTS,
        landing_path="/CISPublic/enter",
    ),
)

NAME_STRATEGIES: tuple[Strategy, ...] = (
    Strategy(
        key="roasearch_party",
        source_key=SOURCE_ROASEARCH,
        base_url=ROASEARCH_BASE_URL,
        path="/Parties",
        param_name="partyName",
        document_kind=DocumentKind.SEARCH_RESULTS,
    ),
    Strategy(
        key="courtindex_party",
        source_key=SOURCE_COURTINDEX,
        base_url=COURTINDEX_BASE_URL,
        path="/Parties",
        param_name="partyName",
        document_kind=DocumentKind.SEARCH_RESULTS,
        landing_path="/CISPublic/enter",
    ),
    Strategy(
        key="odyroa_party",
        source_key=SOURCE_ODYROA,
        base_url=ODYROA_BASE_URL,
        path="/Parties",
        param_name="partyName",
        document_kind=DocumentKind.SEARCH_RESULTS,
    ),
    Strategy(
        key="sdcourt_search",
        source_key=SOURCE_SDCOURT,
        base_url=SDCOURT_BASE_URL,
        path=CASE_SEARCH_PATH,
        param_name="partyName",
        document_kind=DocumentKind.SEARCH_RESULTS,
        landing_path=CASE_SEARCH_PATH,
    ),
)

DEFAULT_STRATEGIES: dict[QueryKind, tuple[Strategy, ...]] = {
    QueryKind.CASE_NUMBER: CASE_NUMBER_STRATEGIES,
    QueryKind.NAME: NAME_STRATEGIES,
}

CALENDAR_STRATEGY = Strategy(
    key="sdcourt_calendar",
    source_key=SOURCE_SDCOURT,
    base_url=SDCOURT_BASE_URL,
    path=CALENDAR_PATH,
    param_name="startDate",
    document_kind=DocumentKind.CALENDAR,
    landing_path=CALENDAR_PATH,
    fixed_params=(
        ("_nfpb", "true"),
        ("_pageLabel", "portal_portal_page_3"),
        ("_nfls", "false"),
    ),
)


class CourtPortalClient(BaseScraper):
    """Shared ``httpx.AsyncClient`` for every portal subsystem.

    ``transport`` is passed straight to httpx; tests hand in a
    ``httpx.MockTransport``.
    """

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        fetch_timeout: float = FETCH_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__("sdcourt")
        self.user_agent = user_agent
        self.fetch_timeout = fetch_timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._warmed: set[str] = set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                headers=browser_headers(self.user_agent),
                timeout=httpx.Timeout(self.fetch_timeout, connect=CONNECT_TIMEOUT_SECONDS),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def open(self) -> None:
        await self._ensure_client()

    async def close(self) -> None:
        """Shut down the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None
        self._warmed.clear()

    async def __aenter__(self) -> CourtPortalClient:
        await self._ensure_client()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Session warm-up
    # ------------------------------------------------------------------

    def needs_warmup(self, strategy: Strategy) -> bool:
        return strategy.base_url not in self._warmed

    async def warm(self, strategy: Strategy) -> None:
        """GET the subsystem landing page once so it hands out its cookies.

        Failures are logged and otherwise ignored; the real request decides.
        """
        self._warmed.add(strategy.base_url)
        try:
            await self._get(strategy.referer, params=None, referer=strategy.referer)
            logger.debug(f"Session warmed for {strategy.base_url}")
        except CourtDataError as exc:
            logger.warning(f"Session warm-up failed for {strategy.base_url}: {exc}")

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    async def fetch(self, strategy: Strategy, params: Mapping[str, str]) -> FetchedPage:
        """GET one strategy endpoint.

        Raises:
            TransientNetworkError: timeout or connection failure.
            UpstreamHttpError: non-2xx status or a bot wall.
        """
        return await self._get(strategy.url, params=params, referer=strategy.referer)

    async def _get(
        self, url: str, params: Mapping[str, str] | None, referer: str
    ) -> FetchedPage:
        client = await self._ensure_client()
        try:
            resp = await client.get(url, params=params, headers={"Referer": referer})
        except httpx.HTTPError as exc:
            raise self.translate_error(exc, url) from exc
        return self.check_response(resp)
