from __future__ import annotations

import re
from contextlib import suppress
from datetime import UTC, date, datetime
from typing import Any

# M/D/YYYY, YYYY-MM-DD and ISO datetimes all show up in portal markup
_DATE_IN_TEXT_RE = re.compile(
    r"(\d{1,2}/\d{1,2}/\d{4}|\d{4}-\d{2}-\d{2}(?:[T ]\d{2}:\d{2}(?::\d{2})?)?)"
)


def now_utc() -> datetime:
    """Return timezone-aware UTC timestamp."""
    return datetime.now(tz=UTC)


def parse_date(value: Any) -> date | None:
    """Parse common portal date formats to a date object."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        with suppress(ValueError):
            return datetime.fromisoformat(raw).date()
        for fmt in ("%m/%d/%Y", "%m/%d/%Y %H:%M:%S", "%m/%d/%Y %I:%M %p", "%Y%m%d"):
            with suppress(ValueError):
                return datetime.strptime(raw, fmt).date()
    return None


def find_date(text: str | None) -> date | None:
    """Return the first parseable date-like substring inside ``text``."""
    if not text:
        return None
    for match in _DATE_IN_TEXT_RE.finditer(text):
        parsed = parse_date(match.group(1))
        if parsed is not None:
            return parsed
    return None
