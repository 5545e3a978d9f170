"""
caseindex configuration - court portal endpoints, request budgets and engine knobs.

Module-level constants are the defaults. ``EngineSettings.from_env()`` applies
``CASEINDEX_*`` environment overrides (``.env`` files are honoured).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from caseindex.errors import ConfigurationError

# Portal endpoints
SDCOURT_BASE_URL = "https://www.sdcourt.ca.gov"
ROASEARCH_BASE_URL = "https://roasearch.sdcourt.ca.gov"
ODYROA_BASE_URL = "https://odyroa.sdcourt.ca.gov"
COURTINDEX_BASE_URL = "https://courtindex.sdcourt.ca.gov"

CASE_SEARCH_PATH = "/sdcourt/generalinformation/courtrecords2/onlinecasesearch"
CALENDAR_PATH = "/portal/portal.portal"

# Rate limiting: source key -> (requests, window seconds)
SOURCE_SDCOURT = "sdcourt"
SOURCE_ROASEARCH = "roasearch"
SOURCE_ODYROA = "odyroa"
SOURCE_COURTINDEX = "courtindex"

DEFAULT_RATE_LIMITS: dict[str, tuple[int, float]] = {
    SOURCE_SDCOURT: (450, 10.0),
    SOURCE_ROASEARCH: (15, 60.0),
    SOURCE_ODYROA: (30, 60.0),
    SOURCE_COURTINDEX: (30, 60.0),
}

# Cache
CACHE_TTL_SECONDS = 300.0
RAW_CACHE_TTL_SECONDS = 120.0

# Fetching
FETCH_TIMEOUT_SECONDS = 30.0
CONNECT_TIMEOUT_SECONDS = 10.0
MAX_RATE_WAIT_SECONDS = 60.0
ADMISSION_RETRIES = 1

# Tracked-case refresh
REFRESH_WORKERS = 4
REFRESH_RETRIES = 1

CLIENT_IDENTIFIER = "CaseIndexRT/1.0 (Legal Technology Platform)"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    f"(KHTML, like Gecko) Chrome/118.0 Safari/537.36 {CLIENT_IDENTIFIER}"
)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def parse_rate_limits(raw: str) -> dict[str, tuple[int, float]]:
    """Parse ``"roasearch=15/60,odyroa=30/60"`` into ``{key: (limit, window)}``."""
    limits: dict[str, tuple[int, float]] = {}
    for chunk in raw.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        key, sep, budget = chunk.partition("=")
        count, slash, window = budget.partition("/")
        if not sep or not slash or not key.strip():
            raise ConfigurationError(f"Malformed rate limit entry: {chunk!r}")
        try:
            limit = int(count)
            seconds = float(window)
        except ValueError as exc:
            raise ConfigurationError(f"Malformed rate limit entry: {chunk!r}") from exc
        if limit <= 0 or seconds <= 0:
            raise ConfigurationError(f"Rate limit must be positive: {chunk!r}")
        limits[key.strip().lower()] = (limit, seconds)
    return limits


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative, got {raw!r}")
    return value


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative, got {raw!r}")
    return value


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean flag, got {raw!r}")


@dataclass(frozen=True)
class EngineSettings:
    """Runtime knobs for the acquisition engine."""

    rate_limits: dict[str, tuple[int, float]] = field(
        default_factory=lambda: dict(DEFAULT_RATE_LIMITS)
    )
    cache_ttl: float = CACHE_TTL_SECONDS
    raw_cache_ttl: float = RAW_CACHE_TTL_SECONDS
    fetch_timeout: float = FETCH_TIMEOUT_SECONDS
    max_rate_wait: float = MAX_RATE_WAIT_SECONDS
    admission_retries: int = ADMISSION_RETRIES
    refresh_workers: int = REFRESH_WORKERS
    refresh_retries: int = REFRESH_RETRIES
    warm_sessions: bool = True
    user_agent: str = DEFAULT_USER_AGENT

    @classmethod
    def from_env(cls) -> EngineSettings:
        load_dotenv()
        rate_limits = dict(DEFAULT_RATE_LIMITS)
        override = os.getenv("CASEINDEX_RATE_LIMITS")
        if override:
            rate_limits.update(parse_rate_limits(override))

        workers = _env_int("CASEINDEX_REFRESH_WORKERS", REFRESH_WORKERS)
        if workers < 1:
            raise ConfigurationError("CASEINDEX_REFRESH_WORKERS must be at least 1")

        return cls(
            rate_limits=rate_limits,
            cache_ttl=_env_float("CASEINDEX_CACHE_TTL", CACHE_TTL_SECONDS),
            raw_cache_ttl=_env_float("CASEINDEX_RAW_CACHE_TTL", RAW_CACHE_TTL_SECONDS),
            fetch_timeout=_env_float("CASEINDEX_FETCH_TIMEOUT", FETCH_TIMEOUT_SECONDS),
            max_rate_wait=_env_float("CASEINDEX_MAX_RATE_WAIT", MAX_RATE_WAIT_SECONDS),
            admission_retries=_env_int("CASEINDEX_ADMISSION_RETRIES", ADMISSION_RETRIES),
            refresh_workers=workers,
            refresh_retries=_env_int("CASEINDEX_REFRESH_RETRIES", REFRESH_RETRIES),
            warm_sessions=_env_bool("CASEINDEX_WARM_SESSIONS", True),
            user_agent=os.getenv("CASEINDEX_USER_AGENT") or DEFAULT_USER_AGENT,
        )
