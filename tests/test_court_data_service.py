from __future__ import annotations

import asyncio
from datetime import date

import httpx
import pytest

from caseindex.errors import CaseLookupFailed, RateLimitExceeded, UnknownSourceError
from caseindex.models import QueryKind, RateLimitState
from caseindex.services.rate_limiter import RateLimiter
from tests.helpers import (
    DASHED_RESULTS_HTML,
    MAINTENANCE_PAGE,
    NO_RESULTS_PAGE,
    budgets,
    make_service,
    settings,
)

MINIMAL_CASE_PAGE = (
    "<html><body>"
    "<p>Case Title: Smith v. Jones, Department: 702, Date Filed: 2/10/2022</p>"
    "</body></html>"
)

CALENDAR_PAGE = """
<html><body>
<table>
  <tr><th>Date</th><th>Time</th><th>Case Number</th><th>Hearing Type</th><th>Dept</th></tr>
  <tr><td>04/03/2030</td><td>1:30 PM</td><td>22FL001581C</td><td>Trial</td><td>702</td></tr>
  <tr><td>04/01/2030</td><td>9:00 AM</td><td>23CV000123A</td><td>Status Conference</td><td>C-61</td></tr>
  <tr><td>05/20/2030</td><td>9:00 AM</td><td>23CV000123A</td><td>Motion</td><td>C-61</td></tr>
</table>
</body></html>
"""


def test_case_number_lookup_end_to_end() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if request.url.host == "www.sdcourt.ca.gov":
            return httpx.Response(200, text=MINIMAL_CASE_PAGE)
        return httpx.Response(404, text="Not Found")

    async def run():
        async with make_service(handler) as service:
            return await service.search_cases("22FL001581C", "caseNumber")

    [record] = asyncio.run(run())

    assert record.case_number == "22FL001581C"
    assert record.parties == ("Smith", "Jones")
    assert record.department == "702"
    assert record.date_filed == date(2022, 2, 10)
    assert record.to_api_dict()["dateFiled"] == "2022-02-10"
    assert len(calls) == 1


def test_invalid_case_number_returns_empty_without_upstream_call() -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        return httpx.Response(200, text=MINIMAL_CASE_PAGE)

    service = make_service(handler)

    assert asyncio.run(service.search_cases("not-a-case", QueryKind.CASE_NUMBER)) == []
    assert calls == []


def test_unknown_case_is_none_not_an_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=NO_RESULTS_PAGE)

    service = make_service(handler)

    assert asyncio.run(service.get_case_details("22FL009999C")) is None
    assert asyncio.run(service.search_cases("Nobody", "name")) == []


def test_failed_lookup_raises_with_result_attached() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="Service Unavailable")

    service = make_service(handler)

    with pytest.raises(CaseLookupFailed) as excinfo:
        asyncio.run(service.get_case_details("22FL001581C"))

    assert excinfo.value.result is not None
    assert len(excinfo.value.result.attempts) == 4


def test_exhausted_budgets_raise_rate_limit_exceeded() -> None:
    limiter = RateLimiter(budgets(1, 60.0))
    for source in limiter.sources:
        limiter.try_admit(source)

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=MINIMAL_CASE_PAGE)

    service = make_service(handler, engine_settings=settings(max_rate_wait=0.0), limiter=limiter)

    with pytest.raises(RateLimitExceeded) as excinfo:
        asyncio.run(service.search_cases("Smith", "name"))

    assert excinfo.value.source_key in limiter.sources
    assert excinfo.value.retry_after is not None


def test_rate_limit_status_single_and_all() -> None:
    service = make_service(lambda request: httpx.Response(200, text=""))

    everything = service.get_rate_limit_status()
    roa = service.get_rate_limit_status("roasearch")

    assert set(everything) == {"sdcourt", "roasearch", "odyroa", "courtindex"}
    assert isinstance(roa, RateLimitState)
    assert roa.limit == 15
    assert roa.window_seconds == 60
    assert everything["sdcourt"].limit == 450
    with pytest.raises(UnknownSourceError):
        service.get_rate_limit_status("missing")


def test_update_tracked_cases_delegates_to_refresher() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=MINIMAL_CASE_PAGE)

    service = make_service(handler)

    result = asyncio.run(service.update_tracked_cases(["22FL001581C"]))

    assert list(result.updated) == ["22FL001581C"]
    assert result.ok


def test_calendar_events_in_range_sorted() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text=CALENDAR_PAGE)

    service = make_service(handler)

    events = asyncio.run(service.get_calendar_events("2030-04-01", date(2030, 4, 30)))

    assert [e.event_type for e in events] == ["Status Conference", "Trial"]
    assert events[0].department == "C-61"
    [request] = seen
    assert request.url.path == "/portal/portal.portal"
    assert request.url.params["startDate"] == "04/01/2030"
    assert request.url.params["endDate"] == "04/30/2030"
    assert service.limiter.status("sdcourt").current == 1


def test_calendar_failure_raises_lookup_failed() -> None:
    service = make_service(lambda request: httpx.Response(500, text="oops"))

    with pytest.raises(CaseLookupFailed):
        asyncio.run(service.get_calendar_events(date(2030, 4, 1), date(2030, 4, 2)))


def test_calendar_rejects_inverted_range() -> None:
    service = make_service(lambda request: httpx.Response(200, text=CALENDAR_PAGE))

    with pytest.raises(ValueError):
        asyncio.run(service.get_calendar_events(date(2030, 5, 1), date(2030, 4, 1)))


def test_integration_status_and_lifecycle() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=MINIMAL_CASE_PAGE)

    service = make_service(handler)

    async def run():
        async with service:
            await service.get_case_details("22FL001581C")
            return service.integration_status()

    status = asyncio.run(run())

    assert status["connected"] is True
    assert status["cacheEntries"] >= 1
    assert status["sources"]["sdcourt"]["current"] == 1
    assert status["sources"]["roasearch"]["remaining"] == 15
    assert status["features"]["calendarSync"] is True
    assert service.integration_status()["connected"] is False
    assert len(service.cache) == 0


def test_dashed_case_number_lookup_returns_the_matching_row() -> None:
    service = make_service(lambda request: httpx.Response(200, text=DASHED_RESULTS_HTML))

    [record] = asyncio.run(service.search_cases("FL-2024-222222", QueryKind.CASE_NUMBER))

    assert record.case_number == "FL2024222222"
    assert record.case_title == "Gamma v. Delta"
    assert record.parties == ("Gamma", "Delta")


def test_maintenance_page_is_not_a_case() -> None:
    service = make_service(lambda request: httpx.Response(200, text=MAINTENANCE_PAGE))

    assert asyncio.run(service.search_cases("22FL001581C", QueryKind.CASE_NUMBER)) == []
