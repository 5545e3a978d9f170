"""
Bulk refresh of tracked cases.

A small pool of workers drains a queue of canonical case numbers through the
router. The pool never exceeds the tightest per-source budget, so the limiter
rather than the pool decides throughput. One case failing never aborts the
others; each lands in exactly one of ``updated`` or ``failures``.
"""

from __future__ import annotations

import asyncio
from typing import Iterable, Mapping

from loguru import logger

from caseindex.config import EngineSettings
from caseindex.models import (
    CaseChanges,
    CaseRecord,
    FailureReason,
    QueryKind,
    RefreshResult,
    SearchQuery,
    SearchResult,
    SearchStatus,
)
from caseindex.services.rate_limiter import RateLimiter
from caseindex.services.search_router import SearchRouter, Sleep
from caseindex.utils.case_numbers import canonical_case_number, is_valid_case_number

# Failures worth another pass; normalization and timeouts are final
RETRYABLE_REASONS = frozenset(
    {
        FailureReason.RATE_LIMITED,
        FailureReason.TRANSIENT_NETWORK,
        FailureReason.UPSTREAM_HTTP,
    }
)

_TRACKED_FIELDS = ("case_title", "case_type", "status", "department", "judge")


def detect_case_changes(previous: CaseRecord, current: CaseRecord) -> CaseChanges:
    """Diff two snapshots of the same case: new ROA lines, new events, changed fields."""
    seen_actions = {(a.date, a.action, a.description) for a in previous.register_of_actions}
    seen_events = {
        (e.date, e.time, e.event_type, e.department) for e in previous.upcoming_events
    }
    new_actions = tuple(
        a for a in current.register_of_actions
        if (a.date, a.action, a.description) not in seen_actions
    )
    new_events = tuple(
        e for e in current.upcoming_events
        if (e.date, e.time, e.event_type, e.department) not in seen_events
    )
    field_changes = {
        name: (getattr(previous, name), getattr(current, name))
        for name in _TRACKED_FIELDS
        if getattr(previous, name) != getattr(current, name)
    }
    return CaseChanges(
        case_number=current.case_number,
        new_actions=new_actions,
        new_events=new_events,
        field_changes=field_changes,
    )


def _failure_message(result: SearchResult) -> str:
    if result.status is SearchStatus.NOT_FOUND:
        return "not found"
    reason = result.reason.value if result.reason else "failed"
    return f"{reason}: {result.detail}" if result.detail else reason


class CaseRefresher:
    def __init__(
        self,
        router: SearchRouter,
        limiter: RateLimiter,
        settings: EngineSettings | None = None,
        retry_delay: float = 1.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.router = router
        self.limiter = limiter
        self.settings = settings or EngineSettings()
        self.retry_delay = retry_delay
        self._sleep = sleep

    def pool_size(self, pending: int) -> int:
        return max(1, min(self.settings.refresh_workers, self.limiter.tightest_limit(), pending))

    async def _refresh_one(self, case_number: str, deadline: float | None) -> SearchResult:
        query = SearchQuery(kind=QueryKind.CASE_NUMBER, text=case_number)
        result = await self.router.search(query, deadline=deadline, fresh=True)
        for attempt in range(self.settings.refresh_retries):
            if result.status is not SearchStatus.FAILED or result.reason not in RETRYABLE_REASONS:
                break
            delay = self.retry_delay * (attempt + 1)
            if deadline is not None and asyncio.get_running_loop().time() + delay >= deadline:
                break
            logger.info(
                f"Retrying {case_number} in {delay:.1f}s after {result.reason.value} "
                f"({attempt + 1}/{self.settings.refresh_retries})"
            )
            await self._sleep(delay)
            result = await self.router.search(query, deadline=deadline, fresh=True)
        return result

    async def refresh(
        self,
        case_numbers: Iterable[str],
        previous: Mapping[str, CaseRecord] | None = None,
        deadline: float | None = None,
    ) -> RefreshResult:
        """Re-fetch every tracked case.

        Args:
            case_numbers: case numbers in any accepted format; duplicates
                after canonicalization are fetched once.
            previous: last known records keyed by case number, used for
                change detection.
            deadline: absolute event-loop time shared by every lookup.
        """
        # canonical number -> first spelling seen, which is what gets sent upstream
        numbers: dict[str, str] = {}
        for raw in case_numbers:
            if raw and raw.strip():
                numbers.setdefault(canonical_case_number(raw), " ".join(raw.split()))
        if not numbers:
            return RefreshResult()

        known = {canonical_case_number(k): v for k, v in (previous or {}).items()}
        updated: dict[str, CaseRecord] = {}
        failures: dict[str, str] = {}
        changes: dict[str, CaseChanges] = {}

        queue: asyncio.Queue[str] = asyncio.Queue()
        for number, spelling in numbers.items():
            if is_valid_case_number(spelling):
                queue.put_nowait(number)
            else:
                failures[number] = "invalid case number"

        async def worker() -> None:
            loop = asyncio.get_running_loop()
            while True:
                try:
                    number = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                if deadline is not None and loop.time() >= deadline:
                    failures[number] = f"{FailureReason.TIMEOUT.value}: deadline exceeded"
                    continue
                result = await self._refresh_one(numbers[number], deadline)
                record = result.record
                if result.status is SearchStatus.SUCCESS and record is not None:
                    updated[number] = record
                    if number in known:
                        diff = detect_case_changes(known[number], record)
                        if diff.has_changes:
                            changes[number] = diff
                else:
                    failures[number] = _failure_message(result)

        workers = self.pool_size(queue.qsize())
        logger.info(f"Refreshing {queue.qsize()} tracked case(s) with {workers} worker(s)")
        await asyncio.gather(*(worker() for _ in range(workers)))

        logger.info(
            f"Refresh complete: {len(updated)} updated, {len(failures)} failed, "
            f"{len(changes)} with changes"
        )
        for number, message in failures.items():
            logger.warning(f"Refresh failed for {number}: {message}")
        return RefreshResult(updated=updated, failures=failures, changes=changes)
