"""
Map extractor field maps onto ``CaseRecord``.

Pure function of (raw fields, query): no clock reads, no network, so the same
input always yields the same record.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Any, Iterable

from caseindex.errors import NormalizationError
from caseindex.models import (
    UNKNOWN,
    ActionEntry,
    CaseRecord,
    EventEntry,
    QueryKind,
    SearchQuery,
    UpgradeOptions,
)
from caseindex.services.html_extractor import RawFields
from caseindex.utils.case_numbers import (
    canonical_case_number,
    case_type_from_number,
    find_case_numbers,
    is_valid_case_number,
)
from caseindex.utils.time import find_date

_VERSUS_RE = re.compile(r"\s+(?:vs\.?|v\.|v|versus)\s+", re.IGNORECASE)
_IMAGED_RE = re.compile(r"\[\s*IMAGED\s*\]", re.IGNORECASE)
_NAME_SEP_RE = re.compile(r"\s*;\s*")

# Labeled party fields, filer side first
_PARTY_FIELDS = ("petitioner", "plaintiff", "respondent", "defendant")


def _text(value: Any) -> str:
    if value is None:
        return ""
    return " ".join(_IMAGED_RE.sub(" ", str(value)).split()).strip(" ,;:")


def _or_unknown(value: Any) -> str:
    return _text(value) or UNKNOWN


def _dedupe(names: Iterable[str]) -> tuple[str, ...]:
    out: list[str] = []
    seen: set[str] = set()
    for name in names:
        name = _text(name)
        key = name.upper()
        if name and key not in seen:
            seen.add(key)
            out.append(name)
    return tuple(out)


def _split_names(value: str) -> list[str]:
    return [part for part in _NAME_SEP_RE.split(value) if part.strip()]


def derive_parties(raw: RawFields, title: str) -> tuple[str, ...]:
    """Labeled parties first, then a party table, then the ``A v. B`` title."""
    names: list[str] = []
    for name in _PARTY_FIELDS:
        value = _text(raw.get(name))
        if value:
            names.extend(_split_names(value))
    if not names:
        for row in raw.get("parties") or []:
            names.append(_text(row.get("name")))
    if not names and title:
        sides = _VERSUS_RE.split(title, maxsplit=1)
        if len(sides) == 2:
            names.extend(sides)
    return _dedupe(names)


def _sort_key(entry_date: date | None) -> tuple[int, date]:
    # Undated entries sort after dated ones
    return (0, entry_date) if entry_date else (1, date.min)


def _actions(rows: Iterable[RawFields]) -> tuple[ActionEntry, ...]:
    entries = [
        ActionEntry(
            date=find_date(row.get("date")),
            action=_or_unknown(row.get("action")),
            description=_text(row.get("description")),
            filed_by=_or_unknown(row.get("filed_by")),
        )
        for row in rows
    ]
    return tuple(sorted(entries, key=lambda e: _sort_key(e.date)))


def normalize_events(rows: Iterable[RawFields]) -> tuple[EventEntry, ...]:
    entries = [
        EventEntry(
            date=find_date(row.get("date")),
            time=_text(row.get("time")),
            event_type=_or_unknown(row.get("event_type")),
            department=_or_unknown(row.get("department")),
            description=_text(row.get("description")),
        )
        for row in rows
    ]
    return tuple(sorted(entries, key=lambda e: (_sort_key(e.date), e.time)))


def _department(raw: RawFields) -> str:
    value = _text(raw.get("department"))
    if value:
        # "Dept. 702" / "Department C-61" -> "702" / "C-61"
        value = re.sub(r"^(?:department|dept\.?)\s*", "", value, flags=re.IGNORECASE)
        return value or UNKNOWN
    return _or_unknown(raw.get("court_location"))


def _case_number(raw: RawFields, query: SearchQuery) -> str:
    extracted = canonical_case_number(str(raw.get("case_number") or ""))
    if is_valid_case_number(extracted):
        return extracted
    for candidate in (raw.get("case_number"), raw.get("case_title")):
        numbers = find_case_numbers(str(candidate or ""))
        if numbers:
            return numbers[0]
    if query.kind is QueryKind.CASE_NUMBER and find_case_numbers(query.text):
        return query.normalized
    raise NormalizationError(
        f"No case number in extracted fields for query {query.text!r}"
    )


def normalize(raw: RawFields, query: SearchQuery, source: str = "") -> CaseRecord:
    """Build a canonical record from one extracted field map.

    Raises:
        NormalizationError: the case number can be derived neither from the
            page nor from a case-number query.
    """
    case_number = _case_number(raw, query)
    title = _text(raw.get("case_title"))
    parties = derive_parties(raw, title)
    if not title and len(parties) >= 2:
        title = f"{parties[0]} v. {parties[1]}"

    actions = _actions(raw.get("actions") or [])
    events = normalize_events(raw.get("events") or [])
    date_filed = find_date(raw.get("date_filed"))

    activity = [e.date for e in actions if e.date] + [e.date for e in events if e.date]
    last_activity = max(activity) if activity else date_filed

    upgrade = raw.get("upgrade")
    upgrade_options = (
        UpgradeOptions(
            features=tuple(upgrade.get("features") or ()),
            pricing=upgrade.get("pricing"),
        )
        if upgrade
        else None
    )

    return CaseRecord(
        case_number=case_number,
        case_title=title or UNKNOWN,
        case_type=_text(raw.get("case_type")) or case_type_from_number(case_number) or UNKNOWN,
        status=_or_unknown(raw.get("status")),
        date_filed=date_filed,
        department=_department(raw),
        judge=_or_unknown(raw.get("judge")),
        parties=parties,
        register_of_actions=actions,
        upcoming_events=events,
        last_activity=last_activity,
        upgrade_options=upgrade_options,
        source=source,
    )
