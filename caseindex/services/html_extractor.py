"""
HTML extraction for court portal pages.

Turns raw HTML into a loosely-typed field map (``RawFields``) without touching
the canonical schema:

- single-valued fields come from label-anchored capture over the page text
  (``Case Title: Smith v. Jones``), first non-empty match wins;
- repeating structures (register of actions, hearings, result sets, parties)
  come from walking the parsed table/link tree.

The result is a tagged value: ``ExtractionSuccess`` with one field map per
case, ``ExtractionEmpty`` when the page explicitly says nothing matched, or
``ExtractionFailure`` with a reason. A page that merely lacks markers is a
failure, never an empty success.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Union

from bs4 import BeautifulSoup, Tag
from loguru import logger

from caseindex.models import DocumentKind
from caseindex.utils.case_numbers import canonical_case_number, find_case_numbers

RawFields = dict[str, Any]

NO_MARKERS = "no-markers-found"
AMBIGUOUS_RESULT_SET = "ambiguous-result-set"
EMPTY_DOCUMENT = "empty-document"


@dataclass(frozen=True)
class ExtractionSuccess:
    records: list[RawFields] = field(default_factory=list)


@dataclass(frozen=True)
class ExtractionEmpty:
    reason: str = "explicit-no-results"


@dataclass(frozen=True)
class ExtractionFailure:
    reason: str
    detail: str = ""


ExtractionResult = Union[ExtractionSuccess, ExtractionEmpty, ExtractionFailure]

# ---------------------------------------------------------------------------
# Label-anchored fields
# ---------------------------------------------------------------------------

# Field -> labels in priority order (regex fragments)
FIELD_LABELS: dict[str, list[str]] = {
    "case_number": [r"Case\s+Number", r"Case\s+No\.?", r"Case\s+#"],
    "case_title": [r"Case\s+Title", r"Case\s+Name", r"Caption", r"Title"],
    "case_type": [r"Case\s+Type", r"Case\s+Category"],
    "status": [r"Case\s+Status", r"Status"],
    "date_filed": [r"Date\s+Filed", r"Filing\s+Date", r"Filed\s+Date", r"Filed"],
    "department": [r"Department", r"Dept\.?"],
    "judge": [r"Judicial\s+Officer", r"Assigned\s+Judge", r"Judge"],
    "court_location": [r"Court\s+Location", r"Location"],
    "petitioner": [r"Petitioner"],
    "plaintiff": [r"Plaintiff"],
    "respondent": [r"Respondent"],
    "defendant": [r"Defendant"],
}

_ALL_LABELS = "|".join(label for labels in FIELD_LABELS.values() for label in labels)
# Another label + colon inside a captured value marks where the value ends
_NEXT_LABEL_RE = re.compile(rf"\s(?:{_ALL_LABELS})\s*:", re.IGNORECASE)
_LABEL_LINE_RE = re.compile(rf"^(?:{_ALL_LABELS})\s*(?::|$)", re.IGNORECASE)
_GARBAGE_RE = re.compile(r"[<>{}]|https?://|function\s*\(|javascript", re.IGNORECASE)

_COMPILED_LABELS: dict[str, list[re.Pattern[str]]] = {
    name: [
        re.compile(rf"(?<![A-Za-z]){label}(?![A-Za-z])\s*(?::|$)\s*(.*)$", re.IGNORECASE)
        for label in labels
    ]
    for name, labels in FIELD_LABELS.items()
}

NO_RESULTS_RE = re.compile(
    r"\bno\s+(?:matching\s+)?(?:cases?|records?|results?|matches)\s+(?:were\s+)?found\b"
    r"|\b(?:returned|produced)\s+no\s+results\b"
    r"|\b0\s+(?:cases?|records?|results?)\s+found\b"
    r"|\bno\s+results\b"
    r"|\bdid\s+not\s+match\s+any\b",
    re.IGNORECASE,
)

_PREMIUM_RE = re.compile(
    r"(register of actions|documents|future hearings|hearings|calendar|case history|parties)"
    r"[^.\n]{0,80}?"
    r"(?:not available|unavailable|requires?\s+(?:an?\s+)?(?:subscription|payment|account|login)"
    r"|premium|subscribers only)",
    re.IGNORECASE,
)
_PRICING_RE = re.compile(r"\$\s?\d+(?:\.\d{2})?(?:\s*(?:per|/)\s*[A-Za-z]+)?")

# ---------------------------------------------------------------------------
# Table column keywords (canonical key -> header substrings), matched in order
# ---------------------------------------------------------------------------

RESULT_COLUMNS: list[tuple[str, tuple[str, ...]]] = [
    ("case_number", ("case number", "case no", "case #", "case num")),
    ("case_title", ("title", "caption", "case name", "parties", "party name", "name")),
    ("case_type", ("type", "category")),
    ("date_filed", ("filed", "date")),
    ("department", ("dept", "department")),
    ("court_location", ("location", "court")),
    ("status", ("status",)),
]

ACTION_COLUMNS: list[tuple[str, tuple[str, ...]]] = [
    ("date", ("date",)),
    ("filed_by", ("filed by", "filer", "party", "by")),
    ("description", ("description", "detail", "text", "comment")),
    ("action", ("action", "document", "filing", "entry", "proceeding", "type")),
]

EVENT_COLUMNS: list[tuple[str, tuple[str, ...]]] = [
    ("date", ("date",)),
    ("time", ("time",)),
    ("department", ("dept", "department", "room")),
    ("case_number", ("case number", "case no", "case #")),
    ("event_type", ("event", "hearing", "type", "proceeding", "calendar")),
    ("description", ("description", "detail", "note", "result")),
]

PARTY_COLUMNS: list[tuple[str, tuple[str, ...]]] = [
    ("role", ("type", "role", "party type")),
    ("name", ("name", "party")),
]


def _clean(text: str) -> str:
    return " ".join((text or "").split())


def _cell_text(cell: Tag) -> str:
    return _clean(cell.get_text(" ", strip=True))


def _map_columns(
    headers: list[str], columns: list[tuple[str, tuple[str, ...]]]
) -> dict[str, int]:
    mapping: dict[str, int] = {}
    used: set[int] = set()
    for key, keywords in columns:
        for idx, header in enumerate(headers):
            if idx in used:
                continue
            if any(keyword in header for keyword in keywords):
                mapping[key] = idx
                used.add(idx)
                break
    return mapping


def _classify_table(headers: list[str]) -> str | None:
    joined = " | ".join(headers)
    if any(find_case_numbers(h) for h in headers):
        return None  # First row holds data, so this is a key/value layout
    has_date = any("date" in h for h in headers)
    if has_date and any(w in joined for w in ("time", "hearing", "event")):
        return "events"
    if any(w in joined for w in ("case number", "case no", "case #", "case num")):
        return "results"
    if has_date and any(
        w in joined for w in ("action", "document", "filing", "entry", "proceeding", "description")
    ):
        return "actions"
    if any(w in joined for w in ("party", "name")) and any(
        w in joined for w in ("type", "role")
    ):
        return "parties"
    return None


@dataclass
class _Tables:
    results: list[RawFields] = field(default_factory=list)
    actions: list[RawFields] = field(default_factory=list)
    events: list[RawFields] = field(default_factory=list)
    parties: list[RawFields] = field(default_factory=list)


def _header_row(rows: list[Tag]) -> tuple[int, list[str]] | None:
    for idx, row in enumerate(rows[:3]):
        cells = row.find_all(["th", "td"])
        if len(cells) >= 2:
            return idx, [_cell_text(c).lower() for c in cells]
    return None


def _parse_tables(soup: BeautifulSoup) -> _Tables:
    """Read every repeating table and detach it from the tree."""
    tables = _Tables()
    layouts = {
        "results": RESULT_COLUMNS,
        "actions": ACTION_COLUMNS,
        "events": EVENT_COLUMNS,
        "parties": PARTY_COLUMNS,
    }
    # Innermost tables first so layout tables wrapping data tables survive
    for table in reversed(soup.find_all("table")):
        rows = table.find_all("tr")
        header = _header_row(rows)
        if header is None:
            continue
        header_idx, headers = header
        kind = _classify_table(headers)
        if kind is None:
            continue
        mapping = _map_columns(headers, layouts[kind])
        parsed: list[RawFields] = []
        for row in rows[header_idx + 1:]:
            cells = [_cell_text(c) for c in row.find_all(["td", "th"])]
            if len(cells) < 2 or not any(cells):
                continue
            entry = {key: cells[idx] for key, idx in mapping.items() if idx < len(cells)}
            if kind == "results":
                numbers = find_case_numbers(entry.get("case_number", "")) or find_case_numbers(
                    " ".join(cells)
                )
                if not numbers:
                    continue
                entry["case_number"] = numbers[0]
            elif kind in ("actions", "events"):
                if not entry.get("date") and not any(
                    entry.get(k) for k in ("action", "event_type", "description")
                ):
                    continue
            elif kind == "parties" and not entry.get("name"):
                continue
            parsed.append(entry)
        getattr(tables, kind).extend(reversed(parsed))
        table.decompose()
    # Tables were walked bottom-up; restore document order
    tables.results.reverse()
    tables.actions.reverse()
    tables.events.reverse()
    tables.parties.reverse()
    return tables


def _link_results(soup: BeautifulSoup) -> list[RawFields]:
    """Result sets rendered as lists of case links instead of a table."""
    results: list[RawFields] = []
    seen: set[str] = set()
    for anchor in soup.find_all("a"):
        text = _cell_text(anchor)
        href = str(anchor.get("href") or "")
        numbers = find_case_numbers(text) or find_case_numbers(href)
        if not numbers or numbers[0] in seen:
            continue
        number = numbers[0]
        seen.add(number)
        container = anchor.find_parent(["li", "tr", "div", "p"]) or anchor
        context = _cell_text(container)
        title = re.sub(re.escape(number), "", context, flags=re.IGNORECASE)
        for raw in find_case_numbers(context):
            title = title.replace(raw, "")
        title = _clean(title.strip(" -:|"))
        entry: RawFields = {"case_number": number}
        if title and title.upper() != number:
            entry["case_title"] = title
        results.append(entry)
    return results


def _page_lines(soup: BeautifulSoup) -> list[str]:
    lines = (_clean(line) for line in soup.get_text("\n").splitlines())
    return [line for line in lines if line]


def _truncate(value: str) -> str:
    match = _NEXT_LABEL_RE.search(f" {value}")
    if match:
        value = f" {value}"[: match.start()]
    return value.strip(" :;,|-")


def _label_values(lines: list[str], field_name: str) -> Iterable[str]:
    """Yield every candidate value for ``field_name`` in label-priority order."""
    for pattern in _COMPILED_LABELS[field_name]:
        for idx, line in enumerate(lines):
            match = pattern.search(line)
            if not match:
                continue
            value = match.group(1).strip()
            if not value and idx + 1 < len(lines) and not _LABEL_LINE_RE.match(lines[idx + 1]):
                value = lines[idx + 1]
            value = _truncate(value)
            if value and len(value) <= 200 and not _GARBAGE_RE.search(value):
                yield value


def _labeled_fields(lines: list[str]) -> RawFields:
    fields: RawFields = {}
    for name in FIELD_LABELS:
        value = next(iter(_label_values(lines, name)), None)
        if value:
            fields[name] = value
    return fields


def _upgrade_options(text: str) -> RawFields | None:
    features: list[str] = []
    for match in _PREMIUM_RE.finditer(text):
        feature = " ".join(match.group(1).lower().split())
        if feature not in features:
            features.append(feature)
    if not features:
        return None
    pricing = _PRICING_RE.search(text)
    return {"features": features, "pricing": pricing.group(0) if pricing else None}


def _parse(raw_html: str) -> tuple[BeautifulSoup, _Tables, list[str], str]:
    soup = BeautifulSoup(raw_html, "html.parser")
    for tag in soup(["script", "style", "noscript", "head", "template", "svg"]):
        tag.decompose()
    full_text = "\n".join(_page_lines(soup))
    tables = _parse_tables(soup)
    return soup, tables, _page_lines(soup), full_text


def _detail_record(
    fields: RawFields, tables: _Tables, full_text: str
) -> RawFields:
    record = dict(fields)
    if tables.actions:
        record["actions"] = tables.actions
    if tables.events:
        record["events"] = tables.events
    if tables.parties:
        record["parties"] = tables.parties
    upgrade = _upgrade_options(full_text)
    if upgrade:
        record["upgrade"] = upgrade
    return record


_IDENTIFYING_FIELDS = ("case_title", "petitioner", "plaintiff", "respondent", "defendant")


def _identifies_case(fields: RawFields, tables: _Tables) -> bool:
    """Status or department labels alone show up on notice pages too."""
    if find_case_numbers(fields.get("case_number", "")):
        return True
    if any(fields.get(name) for name in _IDENTIFYING_FIELDS):
        return True
    return bool(tables.actions or tables.events or tables.parties)


def _extract_detail(
    soup: BeautifulSoup, tables: _Tables, lines: list[str], full_text: str
) -> ExtractionResult:
    fields = _labeled_fields(lines)
    numbers = {canonical_case_number(v) for v in _label_values(lines, "case_number")}
    numbers = {n for n in numbers if find_case_numbers(n)}
    if len(numbers) > 1:
        return ExtractionFailure(
            AMBIGUOUS_RESULT_SET, f"labeled case numbers: {', '.join(sorted(numbers))}"
        )
    if _identifies_case(fields, tables):
        if "case_number" in fields:
            found = find_case_numbers(fields["case_number"])
            if found:
                fields["case_number"] = found[0]
        return ExtractionSuccess([_detail_record(fields, tables, full_text)])
    if tables.results:
        return ExtractionSuccess(tables.results)
    return _nothing_found(full_text)


def _extract_results(
    soup: BeautifulSoup, tables: _Tables, lines: list[str], full_text: str
) -> ExtractionResult:
    rows = tables.results or _link_results(soup)
    if rows:
        return ExtractionSuccess(rows)
    # Portal jumped straight to the case page for a single hit
    fields = _labeled_fields(lines)
    if "case_number" in fields and find_case_numbers(fields["case_number"]):
        return _extract_detail(soup, tables, lines, full_text)
    return _nothing_found(full_text)


def _extract_calendar(
    soup: BeautifulSoup, tables: _Tables, lines: list[str], full_text: str
) -> ExtractionResult:
    if tables.events:
        return ExtractionSuccess(tables.events)
    return _nothing_found(full_text)


def _nothing_found(full_text: str) -> ExtractionResult:
    if NO_RESULTS_RE.search(full_text):
        return ExtractionEmpty()
    return ExtractionFailure(NO_MARKERS, f"{len(full_text)} chars of text, no recognizable fields")


_EXTRACTORS = {
    DocumentKind.CASE_DETAIL: _extract_detail,
    DocumentKind.SEARCH_RESULTS: _extract_results,
    DocumentKind.CALENDAR: _extract_calendar,
}


def extract(raw_html: str, document_kind: DocumentKind) -> ExtractionResult:
    """Extract raw fields from one portal page."""
    if not raw_html or not raw_html.strip():
        return ExtractionFailure(EMPTY_DOCUMENT, "no content")
    soup, tables, lines, full_text = _parse(raw_html)
    if not full_text:
        return ExtractionFailure(EMPTY_DOCUMENT, "no visible text")
    result = _EXTRACTORS[document_kind](soup, tables, lines, full_text)
    if isinstance(result, ExtractionSuccess):
        logger.debug(f"Extracted {len(result.records)} record(s) from {document_kind.value} page")
    else:
        logger.debug(f"Extraction of {document_kind.value} page gave {result}")
    return result
