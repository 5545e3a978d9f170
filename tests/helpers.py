"""Shared fakes and page builders for the portal tests."""

from __future__ import annotations

from typing import Callable

import httpx

from caseindex.config import EngineSettings
from caseindex.scrapers.sdcourt_portal import CourtPortalClient
from caseindex.services.court_data_service import CourtDataService
from caseindex.services.rate_limiter import RateLimiter
from caseindex.services.result_cache import ResultCache

ALL_SOURCES = ("sdcourt", "roasearch", "odyroa", "courtindex")


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def detail_page(
    case_number: str = "22FL001581C",
    title: str = "Smith v. Jones",
    status: str = "Open",
    actions: list[tuple[str, str]] | None = None,
) -> str:
    rows = "".join(
        f"<tr><td>{d}</td><td>{a}</td><td>{a} filed</td><td>Smith</td></tr>"
        for d, a in (actions or [])
    )
    roa = (
        "<table><tr><th>Date</th><th>Action</th><th>Description</th><th>Filed By</th></tr>"
        f"{rows}</table>"
        if rows
        else ""
    )
    return f"""
    <html><head><title>Case Detail</title></head><body>
      <div><span>Case Number:</span> <span>{case_number}</span></div>
      <div><b>Case Title:</b> {title}</div>
      <div>Case Status: {status}</div>
      <div>Date Filed: 02/10/2022</div>
      {roa}
    </body></html>
    """


NO_RESULTS_PAGE = "<html><body><h2>Search</h2><p>No records found.</p></body></html>"
MAINTENANCE_PAGE = "<html><body><p>Status: Scheduled maintenance until 6 PM</p></body></html>"
DASHED_RESULTS_HTML = """
<html><body>
<table>
  <tr><th>Case Number</th><th>Case Title</th></tr>
  <tr><td>FL-2024-111111</td><td>Alpha v. Beta</td></tr>
  <tr><td>FL-2024-222222</td><td>Gamma v. Delta</td></tr>
</table>
</body></html>
"""
SEARCH_FORM_PAGE = (
    "<html><body><form><input name='partyName'><button>Go</button></form>"
    "<p>Welcome to the public portal</p></body></html>"
)


def settings(**overrides) -> EngineSettings:
    base = {"warm_sessions": False}
    base.update(overrides)
    return EngineSettings(**base)


def budgets(limit: int, window: float) -> dict[str, tuple[int, float]]:
    return {key: (limit, window) for key in ALL_SOURCES}


Handler = Callable[[httpx.Request], httpx.Response]


def make_service(
    handler: Handler,
    engine_settings: EngineSettings | None = None,
    limiter: RateLimiter | None = None,
) -> CourtDataService:
    engine_settings = engine_settings or settings()
    client = CourtPortalClient(transport=httpx.MockTransport(handler))
    return CourtDataService(
        settings=engine_settings,
        limiter=limiter or RateLimiter(engine_settings.rate_limits),
        cache=ResultCache(engine_settings.cache_ttl),
        client=client,
    )
