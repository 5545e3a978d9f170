import datetime as dt
from enum import Enum
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from caseindex.utils.case_numbers import canonical_case_number

UNKNOWN = "Unknown"


class QueryKind(Enum):
    CASE_NUMBER = "caseNumber"
    NAME = "name"


class DocumentKind(Enum):
    CASE_DETAIL = "case_detail"         # One case: labeled fields + ROA/event tables
    SEARCH_RESULTS = "search_results"   # Result table or list of case links
    CALENDAR = "calendar"               # Court calendar page (events table only)


class SearchStatus(Enum):
    SUCCESS = "SUCCESS"       # At least one record normalized
    NOT_FOUND = "NOT_FOUND"   # Every strategy answered, none matched
    FAILED = "FAILED"         # Transport, HTTP, rate-limit, deadline or normalization failure


class AttemptOutcome(Enum):
    SUCCESS = "SUCCESS"
    EMPTY = "EMPTY"
    FAILED = "FAILED"
    RATE_LIMITED = "RATE_LIMITED"  # Admission denied after the allowed waits


class FailureReason(Enum):
    TRANSIENT_NETWORK = "transient_network"
    UPSTREAM_HTTP = "upstream_http"
    BLOCKED = "blocked"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    NORMALIZATION = "normalization"


class _Model(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class ActionEntry(_Model):
    """One register-of-actions line."""
    date: Optional[dt.date] = None
    action: str = UNKNOWN
    description: str = ""
    filed_by: str = UNKNOWN


class EventEntry(_Model):
    """One scheduled court event."""
    date: Optional[dt.date] = None
    time: str = ""
    event_type: str = UNKNOWN
    department: str = UNKNOWN
    description: str = ""


class UpgradeOptions(_Model):
    """Sections the portal withheld behind its paid tier."""
    premium: bool = True
    features: Tuple[str, ...] = ()
    pricing: Optional[str] = None


class CaseRecord(_Model):
    """
    Canonical case representation. Built fresh for every successful lookup and
    never patched afterwards; optional text fields carry ``UNKNOWN`` instead of
    being left out.
    """
    case_number: str
    case_title: str = UNKNOWN
    case_type: str = UNKNOWN
    status: str = UNKNOWN
    date_filed: Optional[dt.date] = None
    department: str = UNKNOWN
    judge: str = UNKNOWN
    parties: Tuple[str, ...] = ()
    register_of_actions: Tuple[ActionEntry, ...] = ()
    upcoming_events: Tuple[EventEntry, ...] = ()
    last_activity: Optional[dt.date] = None
    upgrade_options: Optional[UpgradeOptions] = None
    source: str = ""  # Strategy that produced the record

    def to_api_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class RateLimitState(_Model):
    source_key: str
    current: int
    limit: int
    window_seconds: float
    window_reset_time: Optional[float] = None  # Limiter clock; None before the first request
    resets_in: float = 0.0

    @property
    def remaining(self) -> int:
        return self.limit - self.current


class SearchQuery(_Model):
    kind: QueryKind
    text: str

    @field_validator("text")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = " ".join(value.split())
        if not value:
            raise ValueError("query text must not be empty")
        return value

    @property
    def normalized(self) -> str:
        if self.kind is QueryKind.CASE_NUMBER:
            return canonical_case_number(self.text)
        return self.text.upper()


class StrategyAttempt(_Model):
    strategy: str
    source_key: str
    outcome: AttemptOutcome
    reason: Optional[FailureReason] = None
    detail: str = ""
    status_code: Optional[int] = None
    ambiguous: bool = False  # No markers and no explicit "no results" text
    retry_after: Optional[float] = None
    duration_ms: Optional[float] = None


class SearchResult(_Model):
    status: SearchStatus
    query: SearchQuery
    records: Tuple[CaseRecord, ...] = ()
    reason: Optional[FailureReason] = None
    detail: str = ""
    attempts: Tuple[StrategyAttempt, ...] = ()
    from_cache: bool = False
    ambiguous: bool = False
    timestamp: dt.datetime = Field(default_factory=lambda: dt.datetime.now(dt.UTC))

    @property
    def record(self) -> Optional[CaseRecord]:
        return self.records[0] if self.records else None


class CaseChanges(_Model):
    case_number: str
    new_actions: Tuple[ActionEntry, ...] = ()
    new_events: Tuple[EventEntry, ...] = ()
    field_changes: Dict[str, Tuple[str, str]] = Field(default_factory=dict)

    @property
    def has_changes(self) -> bool:
        return bool(self.new_actions or self.new_events or self.field_changes)


class RefreshResult(_Model):
    updated: Dict[str, CaseRecord] = Field(default_factory=dict)
    failures: Dict[str, str] = Field(default_factory=dict)
    changes: Dict[str, CaseChanges] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures
