"""
caseindex: court-records acquisition engine for the San Diego Superior Court portals.

Modules:
- services.rate_limiter: per-source request budgets
- services.html_extractor: label and table extraction from portal HTML
- services.case_normalizer: canonical CaseRecord construction
- services.search_router: ordered strategy fallback with caching
- services.case_refresher: bulk refresh of tracked cases
- services.court_data_service: application-facing facade
"""

from caseindex.config import EngineSettings
from caseindex.errors import CaseLookupFailed, CourtDataError, RateLimitExceeded
from caseindex.models import CaseRecord, QueryKind, RefreshResult, SearchResult, SearchStatus
from caseindex.services.court_data_service import CourtDataService

__all__ = [
    "CaseLookupFailed",
    "CaseRecord",
    "CourtDataError",
    "CourtDataService",
    "EngineSettings",
    "QueryKind",
    "RateLimitExceeded",
    "RefreshResult",
    "SearchResult",
    "SearchStatus",
]
