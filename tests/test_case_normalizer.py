from __future__ import annotations

from datetime import date

import pytest

from caseindex.errors import NormalizationError
from caseindex.models import UNKNOWN, QueryKind, SearchQuery
from caseindex.services.case_normalizer import normalize


def _case_query(text: str = "22FL001581C") -> SearchQuery:
    return SearchQuery(kind=QueryKind.CASE_NUMBER, text=text)


def test_minimal_document_fields() -> None:
    raw = {"case_title": "Smith v. Jones", "department": "702", "date_filed": "2/10/2022"}

    record = normalize(raw, _case_query(), source="sdcourt_case_detail")

    assert record.case_number == "22FL001581C"
    assert record.parties == ("Smith", "Jones")
    assert record.department == "702"
    assert record.date_filed == date(2022, 2, 10)
    assert record.last_activity == date(2022, 2, 10)
    assert record.case_type == "Family Law"
    assert record.source == "sdcourt_case_detail"


def test_missing_optional_fields_default_to_unknown() -> None:
    record = normalize({"case_number": "22FL001581C"}, _case_query())

    assert record.judge == UNKNOWN
    assert record.status == UNKNOWN
    assert record.case_title == UNKNOWN
    assert record.date_filed is None
    assert record.last_activity is None
    assert record.parties == ()
    assert record.to_api_dict()["judge"] == "Unknown"


def test_missing_case_number_on_name_query_is_hard_failure() -> None:
    with pytest.raises(NormalizationError):
        normalize({"case_title": "Smith v. Jones"}, SearchQuery(kind=QueryKind.NAME, text="smith"))


def test_case_number_canonicalized_from_page_or_query() -> None:
    from_page = normalize({"case_number": "Case # 22fl001581c"}, _case_query("22FL001581C"))
    from_query = normalize({}, _case_query(" fl-2024-123456 "))

    assert from_page.case_number == "22FL001581C"
    assert from_query.case_number == "FL2024123456"
    assert from_query.case_type == "Family Law"


def test_labeled_parties_win_over_title_order() -> None:
    raw = {
        "case_number": "22FL001581C",
        "case_title": "In re Marriage of Jones",
        "respondent": "Jones, Alex",
        "petitioner": "Smith, Pat",
    }

    record = normalize(raw, _case_query())

    assert record.parties == ("Smith, Pat", "Jones, Alex")


@pytest.mark.parametrize(
    "title, parties",
    [
        ("SMITH v. JONES [IMAGED]", ("SMITH", "JONES")),
        ("Acme Corp vs. Smith", ("Acme Corp", "Smith")),
        ("Acme Corp VS Smith", ("Acme Corp", "Smith")),
        ("Estate of Smith", ()),
    ],
)
def test_title_split_into_parties(title: str, parties: tuple[str, ...]) -> None:
    record = normalize({"case_number": "22FL001581C", "case_title": title}, _case_query())

    assert record.parties == parties
    assert "[IMAGED]" not in record.case_title


def test_party_table_used_when_no_labels() -> None:
    raw = {
        "case_number": "22FL001581C",
        "parties": [{"name": "Smith, Pat", "role": "Petitioner"}, {"name": "Jones, Alex", "role": "Respondent"}],
    }

    record = normalize(raw, _case_query())

    assert record.parties == ("Smith, Pat", "Jones, Alex")
    assert record.case_title == "Smith, Pat v. Jones, Alex"


def test_actions_and_events_sorted_and_last_activity() -> None:
    raw = {
        "case_number": "22FL001581C",
        "date_filed": "02/10/2022",
        "actions": [
            {"date": "03/01/2022", "action": "Response"},
            {"date": "", "action": "Minute Order"},
            {"date": "2022-01-15", "action": "Petition", "filed_by": "Smith"},
        ],
        "events": [
            {"date": "05/01/2030", "time": "9:00 AM", "event_type": "Trial"},
            {"date": "04/15/2030", "time": "1:30 PM", "event_type": "Status Conference", "department": "702"},
        ],
    }

    record = normalize(raw, _case_query())

    assert [a.action for a in record.register_of_actions] == ["Petition", "Response", "Minute Order"]
    assert record.register_of_actions[0].filed_by == "Smith"
    assert record.register_of_actions[1].filed_by == UNKNOWN
    assert record.register_of_actions[2].date is None
    assert [e.event_type for e in record.upcoming_events] == ["Status Conference", "Trial"]
    assert record.upcoming_events[1].department == UNKNOWN
    assert record.last_activity == date(2030, 5, 1)


def test_department_prefix_and_location_fallback() -> None:
    with_prefix = normalize({"case_number": "22FL001581C", "department": "Dept. 702"}, _case_query())
    location_only = normalize(
        {"case_number": "22FL001581C", "court_location": "Central Courthouse"}, _case_query()
    )

    assert with_prefix.department == "702"
    assert location_only.department == "Central Courthouse"


def test_unparseable_date_is_none_not_today() -> None:
    record = normalize({"case_number": "22FL001581C", "date_filed": "pending"}, _case_query())

    assert record.date_filed is None


def test_upgrade_options_and_api_shape() -> None:
    raw = {
        "case_number": "22FL001581C",
        "date_filed": "2/10/2022",
        "upgrade": {"features": ["documents"], "pricing": "$9.99 per month"},
    }

    payload = normalize(raw, _case_query()).to_api_dict()

    assert payload["caseNumber"] == "22FL001581C"
    assert payload["dateFiled"] == "2022-02-10"
    assert payload["upgradeOptions"] == {
        "premium": True,
        "features": ["documents"],
        "pricing": "$9.99 per month",
    }
    assert payload["registerOfActions"] == []


def test_normalize_is_deterministic() -> None:
    raw = {"case_number": "22FL001581C", "case_title": "Smith v. Jones", "date_filed": "2/10/2022"}

    assert normalize(raw, _case_query()) == normalize(raw, _case_query())
