from __future__ import annotations

from caseindex.models import DocumentKind
from caseindex.services.html_extractor import (
    AMBIGUOUS_RESULT_SET,
    EMPTY_DOCUMENT,
    NO_MARKERS,
    ExtractionEmpty,
    ExtractionFailure,
    ExtractionSuccess,
    extract,
)
from tests.helpers import (
    DASHED_RESULTS_HTML,
    MAINTENANCE_PAGE,
    NO_RESULTS_PAGE,
    SEARCH_FORM_PAGE,
)

DETAIL_HTML = """
<html>
<head><title>Case Title: from the head</title>
<script>var label = "Case Title: not this one";</script></head>
<body>
  <div><span>Case Number:</span> <span>22FL001581C</span></div>
  <div><b>Case Title:</b> Smith v. Jones [IMAGED]</div>
  <table>
    <tr><td>Case Type:</td><td>Family Law</td></tr>
    <tr><td>Case Status:</td><td>Open</td></tr>
  </table>
  <p>Date Filed: 02/10/2022</p>
  <p>Judicial Officer: Hon. Jane Roe Department: 702</p>
  <h3>Register of Actions</h3>
  <table>
    <tr><th>Date</th><th>Action</th><th>Description</th><th>Filed By</th></tr>
    <tr><td>03/01/2022</td><td>Response</td><td>Response to petition</td><td>Jones</td></tr>
    <tr><td>02/10/2022</td><td>Petition</td><td>Petition for dissolution</td><td>Smith</td></tr>
  </table>
  <h3>Future Hearings</h3>
  <table>
    <tr><th>Date</th><th>Time</th><th>Event</th><th>Dept</th></tr>
    <tr><td>04/15/2030</td><td>9:00 AM</td><td>Status Conference</td><td>702</td></tr>
  </table>
  <p>Documents are not available without a premium subscription. Upgrade for $9.99 per month.</p>
</body>
</html>
"""

RESULTS_TABLE_HTML = """
<html><body>
<table>
  <tr><th>Case Number</th><th>Case Title</th><th>Case Type</th><th>Date Filed</th></tr>
  <tr><td><a href="/Case?id=1">22FL001581C</a></td><td>SMITH v. JONES</td><td>Family Law</td><td>02/10/2022</td></tr>
  <tr><td>23CV000123A</td><td>ACME CORP vs. SMITH</td><td>Civil</td><td>1/5/2023</td></tr>
</table>
</body></html>
"""

LINK_LIST_HTML = """
<html><body><ul>
  <li><a href="/roa?case=22FL001581C">22FL001581C</a> - SMITH v. JONES</li>
  <li><a href="/roa?case=23CV000123A">23CV000123A</a> - ACME CORP vs. SMITH</li>
  <li><a href="/help">Help</a></li>
</ul></body></html>
"""


def test_detail_page_labeled_fields() -> None:
    result = extract(DETAIL_HTML, DocumentKind.CASE_DETAIL)

    assert isinstance(result, ExtractionSuccess)
    [record] = result.records
    assert record["case_number"] == "22FL001581C"
    assert record["case_title"] == "Smith v. Jones [IMAGED]"
    assert record["case_type"] == "Family Law"
    assert record["status"] == "Open"
    assert record["date_filed"] == "02/10/2022"
    assert record["judge"] == "Hon. Jane Roe"
    assert record["department"] == "702"


def test_detail_page_tables_and_upgrade_flags() -> None:
    result = extract(DETAIL_HTML, DocumentKind.CASE_DETAIL)

    assert isinstance(result, ExtractionSuccess)
    record = result.records[0]
    assert [a["action"] for a in record["actions"]] == ["Response", "Petition"]
    assert record["actions"][0]["filed_by"] == "Jones"
    assert record["actions"][1]["description"] == "Petition for dissolution"
    assert record["events"] == [
        {"date": "04/15/2030", "time": "9:00 AM", "department": "702", "event_type": "Status Conference"}
    ]
    assert record["upgrade"] == {"features": ["documents"], "pricing": "$9.99 per month"}


def test_fields_in_any_order_and_first_non_empty_wins() -> None:
    html = """
    <div>Department:</div><div>Case Status:</div>
    <div>Judge: Hon. A. First</div>
    <div>Case Status: Closed</div>
    <div>Case Number: 22FL001581C</div>
    <div>Judge: Hon. B. Second</div>
    """
    result = extract(html, DocumentKind.CASE_DETAIL)

    assert isinstance(result, ExtractionSuccess)
    record = result.records[0]
    assert record["judge"] == "Hon. A. First"
    assert record["status"] == "Closed"
    assert "department" not in record


def test_conflicting_case_numbers_are_ambiguous() -> None:
    html = "<p>Case Number: 22FL001581C</p><p>Case Number: 23CV000123A</p>"

    result = extract(html, DocumentKind.CASE_DETAIL)

    assert isinstance(result, ExtractionFailure)
    assert result.reason == AMBIGUOUS_RESULT_SET


def test_results_table_rows() -> None:
    result = extract(RESULTS_TABLE_HTML, DocumentKind.SEARCH_RESULTS)

    assert isinstance(result, ExtractionSuccess)
    assert [r["case_number"] for r in result.records] == ["22FL001581C", "23CV000123A"]
    assert result.records[1]["case_title"] == "ACME CORP vs. SMITH"
    assert result.records[1]["case_type"] == "Civil"
    assert result.records[0]["date_filed"] == "02/10/2022"


def test_link_list_results() -> None:
    result = extract(LINK_LIST_HTML, DocumentKind.SEARCH_RESULTS)

    assert isinstance(result, ExtractionSuccess)
    assert result.records == [
        {"case_number": "22FL001581C", "case_title": "SMITH v. JONES"},
        {"case_number": "23CV000123A", "case_title": "ACME CORP vs. SMITH"},
    ]


def test_search_that_lands_on_a_detail_page() -> None:
    result = extract(DETAIL_HTML, DocumentKind.SEARCH_RESULTS)

    assert isinstance(result, ExtractionSuccess)
    assert result.records[0]["case_number"] == "22FL001581C"
    assert result.records[0]["status"] == "Open"


def test_explicit_no_results_is_empty() -> None:
    assert isinstance(extract(NO_RESULTS_PAGE, DocumentKind.SEARCH_RESULTS), ExtractionEmpty)
    assert isinstance(extract(NO_RESULTS_PAGE, DocumentKind.CASE_DETAIL), ExtractionEmpty)


def test_page_without_markers_is_a_failure_not_empty() -> None:
    result = extract(SEARCH_FORM_PAGE, DocumentKind.SEARCH_RESULTS)

    assert isinstance(result, ExtractionFailure)
    assert result.reason == NO_MARKERS


def test_notice_page_with_only_a_status_label_is_not_a_case() -> None:
    for kind in (DocumentKind.CASE_DETAIL, DocumentKind.SEARCH_RESULTS):
        result = extract(MAINTENANCE_PAGE, kind)
        assert isinstance(result, ExtractionFailure)
        assert result.reason == NO_MARKERS


def test_results_table_with_dashed_case_numbers() -> None:
    result = extract(DASHED_RESULTS_HTML, DocumentKind.CASE_DETAIL)

    assert isinstance(result, ExtractionSuccess)
    assert [r["case_number"] for r in result.records] == ["FL2024111111", "FL2024222222"]


def test_empty_documents() -> None:
    for html in ("", "   ", "<html><head><script>var x = 1;</script></head><body></body></html>"):
        result = extract(html, DocumentKind.CASE_DETAIL)
        assert isinstance(result, ExtractionFailure)
        assert result.reason == EMPTY_DOCUMENT


def test_calendar_events() -> None:
    html = """
    <table>
      <tr><th>Date</th><th>Time</th><th>Case Number</th><th>Hearing Type</th><th>Department</th></tr>
      <tr><td>04/02/2030</td><td>1:30 PM</td><td>22FL001581C</td><td>Trial</td><td>C-61</td></tr>
    </table>
    """
    result = extract(html, DocumentKind.CALENDAR)

    assert isinstance(result, ExtractionSuccess)
    assert result.records == [
        {
            "date": "04/02/2030",
            "time": "1:30 PM",
            "department": "C-61",
            "case_number": "22FL001581C",
            "event_type": "Trial",
        }
    ]
