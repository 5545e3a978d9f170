"""
Ordered-fallback lookup across the court portal subsystems.

For each strategy in order: admit through the per-source limiter (waiting at
most ``max_rate_wait``), fetch (or reuse a cached raw page), extract, filter
and normalize. The first strategy producing a record wins. Every outcome is a
``SearchResult``; only programming errors propagate.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, Mapping

from loguru import logger

from caseindex.config import EngineSettings
from caseindex.errors import (
    DeadlineExceeded,
    NormalizationError,
    RateLimitExceeded,
    TransientNetworkError,
    UpstreamHttpError,
)
from caseindex.models import (
    AttemptOutcome,
    CaseRecord,
    FailureReason,
    QueryKind,
    SearchQuery,
    SearchResult,
    SearchStatus,
    StrategyAttempt,
)
from caseindex.scrapers.sdcourt_portal import DEFAULT_STRATEGIES, CourtPortalClient, Strategy
from caseindex.services.case_normalizer import normalize
from caseindex.services.html_extractor import (
    ExtractionEmpty,
    ExtractionFailure,
    RawFields,
    extract,
)
from caseindex.services.rate_limiter import Admission, RateLimiter
from caseindex.services.result_cache import ResultCache, fingerprint
from caseindex.utils.case_numbers import canonical_case_number, find_case_numbers
from caseindex.utils.logging_utils import log_search

Sleep = Callable[[float], Awaitable[None]]


def result_key(strategy: Strategy, query: SearchQuery) -> str:
    return fingerprint(strategy.key, {"kind": query.kind.value, "q": query.normalized})


def raw_key(strategy: Strategy, params: Mapping[str, str]) -> str:
    return fingerprint(f"raw:{strategy.url}", params)


def _row_case_number(row: RawFields) -> str:
    value = str(row.get("case_number") or "")
    numbers = find_case_numbers(value)
    return numbers[0] if numbers else canonical_case_number(value)


class _Attempts:
    """Attempt log for one router call."""

    def __init__(self) -> None:
        self.items: list[StrategyAttempt] = []
        self.last_retry_after: float | None = None

    def add(
        self, strategy: Strategy, outcome: AttemptOutcome, started: float, **kw: Any
    ) -> None:
        self.items.append(
            StrategyAttempt(
                strategy=strategy.key,
                source_key=strategy.source_key,
                outcome=outcome,
                duration_ms=round((time.perf_counter() - started) * 1000, 1),
                **kw,
            )
        )


class SearchRouter:
    def __init__(
        self,
        client: CourtPortalClient,
        limiter: RateLimiter,
        cache: ResultCache,
        settings: EngineSettings | None = None,
        strategies: Mapping[QueryKind, tuple[Strategy, ...]] | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.client = client
        self.limiter = limiter
        self.cache = cache
        self.settings = settings or EngineSettings()
        self.strategies = dict(strategies or DEFAULT_STRATEGIES)
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    async def _admit(self, source_key: str, deadline: float | None) -> Admission:
        admission = self.limiter.try_admit(source_key)
        waits = 0
        while (
            not admission.allowed
            and waits < self.settings.admission_retries
            and admission.retry_after is not None
            and admission.retry_after <= self.settings.max_rate_wait
        ):
            if deadline is not None:
                remaining = deadline - asyncio.get_running_loop().time()
                if admission.retry_after >= remaining:
                    break
            logger.info(f"Waiting {admission.retry_after:.2f}s for {source_key} budget")
            await self._sleep(admission.retry_after)
            waits += 1
            admission = self.limiter.try_admit(source_key)
        return admission

    async def _warm(self, strategy: Strategy) -> None:
        if not self.settings.warm_sessions or not self.client.needs_warmup(strategy):
            return
        # Warm-up requests spend budget too, but never wait for it
        if self.limiter.try_admit(strategy.source_key).allowed:
            await self.client.warm(strategy)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def _cached(self, query: SearchQuery) -> SearchResult | None:
        for strategy in self.strategies.get(query.kind, ()):
            records = self.cache.get(result_key(strategy, query))
            if records:
                logger.debug(f"Cache hit for {query.normalized!r} via {strategy.key}")
                return SearchResult(
                    status=SearchStatus.SUCCESS,
                    query=query,
                    records=records,
                    from_cache=True,
                )
        return None

    @staticmethod
    def _request_text(query: SearchQuery) -> str:
        if query.kind is QueryKind.CASE_NUMBER:
            return query.text.upper().replace(" ", "")
        return query.text

    @staticmethod
    def _matching(rows: list[RawFields], query: SearchQuery) -> list[RawFields]:
        if query.kind is not QueryKind.CASE_NUMBER:
            return rows
        wanted = query.normalized
        kept = [row for row in rows if _row_case_number(row) == wanted]
        if kept:
            return kept
        # A lone detail record without a labeled number belongs to the queried case
        if len(rows) == 1 and not rows[0].get("case_number"):
            return rows
        return []

    async def search(
        self,
        query: SearchQuery,
        deadline: float | None = None,
        fresh: bool = False,
    ) -> SearchResult:
        """Resolve one query to a ``SearchResult``.

        ``deadline`` is an absolute event-loop time (``loop.time()``); when it
        passes, the in-flight attempt is cancelled and the result is
        ``FAILED`` with reason ``timeout``. ``fresh`` skips cache reads; the
        results are still written back.
        """
        if not fresh:
            cached = self._cached(query)
            if cached is not None:
                return cached

        attempts = _Attempts()
        try:
            async with asyncio.timeout_at(deadline):
                result = await self._run_strategies(query, attempts, deadline, fresh)
        except TimeoutError:
            logger.warning(f"Deadline exceeded searching {query.normalized!r}")
            return SearchResult(
                status=SearchStatus.FAILED,
                query=query,
                reason=FailureReason.TIMEOUT,
                detail="deadline exceeded",
                attempts=tuple(attempts.items),
            )
        return result

    async def _run_strategies(
        self,
        query: SearchQuery,
        attempts: _Attempts,
        deadline: float | None,
        fresh: bool = False,
    ) -> SearchResult:
        text = self._request_text(query)
        for strategy in self.strategies.get(query.kind, ()):
            started = time.perf_counter()
            params = strategy.params_for(text)
            key = raw_key(strategy, params)
            html = None if fresh else self.cache.get(key)
            status_code = None

            if html is None:
                await self._warm(strategy)
                admission = await self._admit(strategy.source_key, deadline)
                if not admission.allowed:
                    attempts.last_retry_after = admission.retry_after
                    attempts.add(
                        strategy,
                        AttemptOutcome.RATE_LIMITED,
                        started,
                        reason=FailureReason.RATE_LIMITED,
                        detail=f"retry after {admission.retry_after or 0:.1f}s",
                        retry_after=admission.retry_after,
                    )
                    continue
                try:
                    page = await self.client.fetch(strategy, params)
                except UpstreamHttpError as exc:
                    reason = FailureReason.BLOCKED if exc.blocked else FailureReason.UPSTREAM_HTTP
                    attempts.add(
                        strategy,
                        AttemptOutcome.FAILED,
                        started,
                        reason=reason,
                        detail=str(exc),
                        status_code=exc.status_code,
                    )
                    continue
                except TransientNetworkError as exc:
                    attempts.add(
                        strategy,
                        AttemptOutcome.FAILED,
                        started,
                        reason=FailureReason.TRANSIENT_NETWORK,
                        detail=str(exc),
                    )
                    continue
                html = page.text
                status_code = page.status_code
                self.cache.put(key, html, ttl=self.settings.raw_cache_ttl)

            extraction = extract(html, strategy.document_kind)
            if isinstance(extraction, (ExtractionEmpty, ExtractionFailure)):
                ambiguous = isinstance(extraction, ExtractionFailure)
                attempts.add(
                    strategy,
                    AttemptOutcome.EMPTY,
                    started,
                    detail=extraction.reason,
                    status_code=status_code,
                    ambiguous=ambiguous,
                )
                log_search(
                    source=strategy.key,
                    query=query.normalized,
                    results_raw=0,
                    outcome="EMPTY",
                    reason=extraction.reason,
                )
                continue

            rows = self._matching(extraction.records, query)
            if not rows:
                attempts.add(
                    strategy,
                    AttemptOutcome.EMPTY,
                    started,
                    detail="no matching case number",
                    status_code=status_code,
                )
                continue

            try:
                records = self._normalize_all(rows, query, strategy)
            except NormalizationError as exc:
                logger.error(f"{strategy.key}: {exc}")
                attempts.add(
                    strategy,
                    AttemptOutcome.FAILED,
                    started,
                    reason=FailureReason.NORMALIZATION,
                    detail=str(exc),
                    status_code=status_code,
                )
                return SearchResult(
                    status=SearchStatus.FAILED,
                    query=query,
                    reason=FailureReason.NORMALIZATION,
                    detail=str(exc),
                    attempts=tuple(attempts.items),
                )

            attempts.add(strategy, AttemptOutcome.SUCCESS, started, status_code=status_code)
            log_search(
                source=strategy.key,
                query=query.normalized,
                results_raw=len(extraction.records),
                results_kept=len(records),
                duration_ms=attempts.items[-1].duration_ms,
                outcome="SUCCESS",
                source_key=strategy.source_key,
            )
            self.cache.put(result_key(strategy, query), records)
            return SearchResult(
                status=SearchStatus.SUCCESS,
                query=query,
                records=records,
                attempts=tuple(attempts.items),
            )

        return self._exhausted(query, attempts)

    @staticmethod
    def _normalize_all(
        rows: list[RawFields], query: SearchQuery, strategy: Strategy
    ) -> tuple[CaseRecord, ...]:
        records: dict[str, CaseRecord] = {}
        for row in rows:
            record = normalize(row, query, source=strategy.key)
            records.setdefault(record.case_number, record)
        return tuple(records.values())

    def _exhausted(self, query: SearchQuery, attempts: _Attempts) -> SearchResult:
        items = attempts.items
        empties = [a for a in items if a.outcome is AttemptOutcome.EMPTY]
        if empties:
            ambiguous = all(a.ambiguous for a in items)
            if ambiguous:
                logger.warning(
                    f"No recognizable case data for {query.normalized!r} on any portal; "
                    "treating as not found"
                )
            else:
                logger.info(f"No cases found for {query.normalized!r}")
            return SearchResult(
                status=SearchStatus.NOT_FOUND,
                query=query,
                attempts=tuple(items),
                ambiguous=ambiguous,
            )

        if items and all(a.outcome is AttemptOutcome.RATE_LIMITED for a in items):
            reason = FailureReason.RATE_LIMITED
            detail = f"retry after {attempts.last_retry_after or 0:.1f}s"
        elif items:
            last = items[-1]
            reason = last.reason or FailureReason.UPSTREAM_HTTP
            detail = last.detail
        else:
            reason = FailureReason.UPSTREAM_HTTP
            detail = f"no strategies configured for {query.kind.value}"
        logger.error(f"All strategies failed for {query.normalized!r}: {reason.value} {detail}")
        return SearchResult(
            status=SearchStatus.FAILED,
            query=query,
            reason=reason,
            detail=detail,
            attempts=tuple(items),
        )

    # ------------------------------------------------------------------
    # Single documents (calendar)
    # ------------------------------------------------------------------

    async def fetch_document(
        self,
        strategy: Strategy,
        params: Mapping[str, str],
        deadline: float | None = None,
    ) -> str:
        """Admitted, raw-cached GET of one strategy endpoint.

        Raises:
            RateLimitExceeded: the source budget stayed exhausted.
            DeadlineExceeded: ``deadline`` passed.
            TransientNetworkError / UpstreamHttpError: transport failures.
        """
        key = raw_key(strategy, params)
        html = self.cache.get(key)
        if html is not None:
            return html
        try:
            async with asyncio.timeout_at(deadline):
                await self._warm(strategy)
                admission = await self._admit(strategy.source_key, deadline)
                if not admission.allowed:
                    raise RateLimitExceeded(strategy.source_key, admission.retry_after)
                page = await self.client.fetch(strategy, params)
        except TimeoutError as exc:
            raise DeadlineExceeded(f"Deadline exceeded fetching {strategy.key}") from exc
        self.cache.put(key, page.text, ttl=self.settings.raw_cache_ttl)
        return page.text
