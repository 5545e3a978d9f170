"""
Application-facing entry point for court case data.

``CourtDataService`` owns one rate limiter, one cache and one portal client
for the life of the process. Construct it once at startup, use it as an async
context manager (or call ``startup()``/``shutdown()``), and inject test
doubles through the constructor.
"""

from __future__ import annotations

import asyncio
from datetime import date
from typing import Any, Iterable, Mapping

from loguru import logger

from caseindex.config import EngineSettings
from caseindex.errors import (
    CaseLookupFailed,
    CourtDataError,
    RateLimitExceeded,
)
from caseindex.models import (
    AttemptOutcome,
    CaseRecord,
    EventEntry,
    FailureReason,
    QueryKind,
    RateLimitState,
    RefreshResult,
    SearchQuery,
    SearchResult,
    SearchStatus,
)
from caseindex.scrapers.sdcourt_portal import CALENDAR_STRATEGY, CourtPortalClient
from caseindex.services.case_normalizer import normalize_events
from caseindex.services.case_refresher import CaseRefresher
from caseindex.services.html_extractor import ExtractionFailure, ExtractionSuccess, extract
from caseindex.services.rate_limiter import RateLimiter
from caseindex.services.result_cache import ResultCache
from caseindex.services.search_router import SearchRouter
from caseindex.utils.case_numbers import is_valid_case_number
from caseindex.utils.logging_utils import Timer
from caseindex.utils.time import now_utc, parse_date

SUPPORTED_FEATURES = {
    "caseSearch": True,
    "partySearch": True,
    "registerOfActions": True,
    "upcomingEvents": True,
    "calendarSync": True,
    "changeDetection": True,
    "documentDownload": False,
}


def _raise_for_failure(result: SearchResult) -> None:
    if result.status is not SearchStatus.FAILED:
        return
    if result.reason is FailureReason.RATE_LIMITED:
        limited = [a for a in result.attempts if a.outcome is AttemptOutcome.RATE_LIMITED]
        last = limited[-1] if limited else None
        raise RateLimitExceeded(
            last.source_key if last else "unknown",
            last.retry_after if last else None,
            result=result,
        )
    reason = result.reason.value if result.reason else "failed"
    raise CaseLookupFailed(
        f"Lookup for {result.query.text!r} failed ({reason}): {result.detail}",
        result=result,
    )


class CourtDataService:
    def __init__(
        self,
        settings: EngineSettings | None = None,
        limiter: RateLimiter | None = None,
        cache: ResultCache | None = None,
        client: CourtPortalClient | None = None,
        router: SearchRouter | None = None,
        refresher: CaseRefresher | None = None,
    ) -> None:
        self.settings = settings or EngineSettings()
        self.limiter = limiter or RateLimiter(self.settings.rate_limits)
        self.cache = cache or ResultCache(self.settings.cache_ttl)
        self.client = client or CourtPortalClient(
            user_agent=self.settings.user_agent,
            fetch_timeout=self.settings.fetch_timeout,
        )
        self.router = router or SearchRouter(
            self.client, self.limiter, self.cache, settings=self.settings
        )
        self.refresher = refresher or CaseRefresher(
            self.router, self.limiter, settings=self.settings
        )
        self._started = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def startup(self) -> None:
        if self._started:
            return
        await self.client.open()
        self._started = True
        logger.info(
            f"CourtDataService started ({len(self.limiter.sources)} sources, "
            f"cache TTL {self.settings.cache_ttl:g}s)"
        )

    async def shutdown(self) -> None:
        await self.client.close()
        self.cache.clear()
        self._started = False
        logger.info("CourtDataService stopped")

    async def __aenter__(self) -> CourtDataService:
        await self.startup()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.shutdown()

    @staticmethod
    def _deadline(timeout: float | None) -> float | None:
        if timeout is None:
            return None
        return asyncio.get_running_loop().time() + timeout

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def search_cases(
        self,
        query: str,
        query_kind: QueryKind | str = QueryKind.NAME,
        timeout: float | None = None,
    ) -> list[CaseRecord]:
        """Search by case number or party name.

        Returns an empty list when nothing matched. Raises ``CaseLookupFailed``
        (``RateLimitExceeded`` for exhausted budgets) when every strategy failed.
        """
        search = SearchQuery(kind=QueryKind(query_kind), text=query)
        if search.kind is QueryKind.CASE_NUMBER and not is_valid_case_number(search.text):
            logger.info(f"Invalid case number format: {search.text!r}")
            return []
        result = await self.router.search(search, deadline=self._deadline(timeout))
        _raise_for_failure(result)
        if result.status is SearchStatus.NOT_FOUND:
            logger.info(f"No matching case for {search.text!r}")
            return []
        records = list(result.records)
        if search.kind is QueryKind.CASE_NUMBER:
            records = records[:1]
        return records

    async def get_case_details(
        self, case_number: str, timeout: float | None = None
    ) -> CaseRecord | None:
        records = await self.search_cases(case_number, QueryKind.CASE_NUMBER, timeout=timeout)
        return records[0] if records else None

    async def update_tracked_cases(
        self,
        case_numbers: Iterable[str],
        previous: Mapping[str, CaseRecord] | None = None,
        timeout: float | None = None,
    ) -> RefreshResult:
        return await self.refresher.refresh(
            case_numbers, previous=previous, deadline=self._deadline(timeout)
        )

    def get_rate_limit_status(
        self, source_key: str | None = None
    ) -> RateLimitState | dict[str, RateLimitState]:
        if source_key is None:
            return self.limiter.all_status()
        return self.limiter.status(source_key)

    # ------------------------------------------------------------------
    # Calendar and status
    # ------------------------------------------------------------------

    async def get_calendar_events(
        self,
        start: date | str,
        end: date | str,
        timeout: float | None = None,
    ) -> list[EventEntry]:
        """Court calendar entries between ``start`` and ``end`` inclusive, soonest first."""
        start_date, end_date = parse_date(start), parse_date(end)
        if start_date is None or end_date is None:
            raise ValueError(f"Invalid calendar range: {start!r} .. {end!r}")
        if end_date < start_date:
            raise ValueError(f"Calendar range ends before it starts: {start_date} > {end_date}")

        params = CALENDAR_STRATEGY.params_for(start_date.strftime("%m/%d/%Y"))
        params["endDate"] = end_date.strftime("%m/%d/%Y")
        try:
            with Timer() as timer:
                html = await self.router.fetch_document(
                    CALENDAR_STRATEGY, params, deadline=self._deadline(timeout)
                )
        except RateLimitExceeded:
            raise
        except CourtDataError as exc:
            logger.error(f"Court calendar sync failed: {exc}")
            raise CaseLookupFailed(f"Unable to sync court calendar: {exc}") from exc

        extraction = extract(html, CALENDAR_STRATEGY.document_kind)
        if not isinstance(extraction, ExtractionSuccess):
            if isinstance(extraction, ExtractionFailure):
                logger.warning(f"Calendar page unrecognized: {extraction.reason}")
            return []
        events = [
            e for e in normalize_events(extraction.records)
            if e.date is not None and start_date <= e.date <= end_date
        ]
        logger.info(
            f"Calendar {start_date}..{end_date}: {len(events)} event(s) in {timer.elapsed_ms:.0f}ms"
        )
        return events

    def integration_status(self) -> dict[str, Any]:
        sources = {}
        for key, state in self.limiter.all_status().items():
            sources[key] = {
                **state.model_dump(mode="json", by_alias=True),
                "remaining": state.remaining,
            }
        return {
            "connected": self._started,
            "sources": sources,
            "cacheEntries": len(self.cache),
            "features": dict(SUPPORTED_FEATURES),
            "checkedAt": now_utc().isoformat(),
        }
