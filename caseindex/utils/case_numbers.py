"""Case-number helpers for San Diego Superior Court identifiers."""

from __future__ import annotations

import re

# 22FL001581C  (YY + type code + six digits + optional suffix)
COMPACT_CASE_RE = re.compile(r"^\d{2}[A-Z]{2}\d{6}[A-Z]?$")
# FL-2024-123456  (type code + year + 4-8 digit sequence)
DASHED_CASE_RE = re.compile(r"^[A-Z]{2}-\d{4}-\d{4,8}$")
# FL2024123456  (the dashed form once canonicalized)
CANONICAL_DASHED_RE = re.compile(r"^[A-Z]{2}(?:19|20)\d{2}\d{4,8}$")

# Finds any of the three forms inside free text
CASE_NUMBER_IN_TEXT_RE = re.compile(
    r"(?<![A-Z0-9])"
    r"(\d{2}[A-Z]{2}\d{6}[A-Z]?|[A-Z]{2}-\d{4}-\d{4,8}|[A-Z]{2}(?:19|20)\d{2}\d{4,8})"
    r"(?![A-Z0-9])",
    re.IGNORECASE,
)

CASE_TYPE_CODES: dict[str, str] = {
    "FL": "Family Law",
    "CR": "Criminal",
    "CV": "Civil",
    "CU": "Civil",
    "CL": "Civil",
    "SC": "Small Claims",
    "TR": "Traffic",
    "JC": "Juvenile",
    "JV": "Juvenile",
    "AD": "Administrative",
    "AP": "Appeals",
    "GU": "Guardianship",
    "MH": "Mental Health",
    "PR": "Probate",
    "WS": "Workers Compensation",
}


def canonical_case_number(value: str) -> str:
    """Uppercase and drop hyphens/whitespace: ``fl-2024-123456`` -> ``FL2024123456``."""
    return re.sub(r"[\s\-]+", "", value or "").upper()


def is_valid_case_number(value: str) -> bool:
    """Accept either portal format, raw or already canonical."""
    raw = (value or "").strip().upper()
    if DASHED_CASE_RE.match(raw):
        return True
    canonical = canonical_case_number(raw)
    return bool(COMPACT_CASE_RE.match(canonical) or CANONICAL_DASHED_RE.match(canonical))


def find_case_numbers(text: str) -> list[str]:
    """Return canonical case numbers found in ``text`` in order of first appearance."""
    seen: list[str] = []
    for match in CASE_NUMBER_IN_TEXT_RE.finditer(text or ""):
        number = canonical_case_number(match.group(1))
        if number not in seen:
            seen.append(number)
    return seen


def case_type_from_number(case_number: str) -> str | None:
    """Infer the case type from the two-letter type code, if recognizable."""
    raw = canonical_case_number(case_number)
    match = re.match(r"^\d{2}([A-Z]{2})\d", raw) or re.match(r"^([A-Z]{2})\d{4}", raw)
    if not match:
        return None
    return CASE_TYPE_CODES.get(match.group(1))
