from pos_tracker.services.ingestion_service import TerminalAssignmentRow
from pos_tracker.services.quality_service import (
    DUPLICATE_MID_INCONSISTENT_NAME,
    DUPLICATE_SIGNATURE_CONFLICT,
    DUPLICATE_SIGNATURE_GLOBAL,
    MISSING_MID,
    MISSING_SIGNATURE,
    SEVERITY_HIGH,
    SEVERITY_MEDIUM,
    analyze_rows,
)


def row(serial, mid, name="", tid=""):
    return TerminalAssignmentRow(serial=serial, merchant_id=mid, merchant_name=name, terminal_id=tid)


def issues_by_kind(rows):
    return {issue.kind: issue for issue in analyze_rows(rows)}


def test_clean_list_has_no_issues():
    rows = [row("S1", "1", "Shop"), row("S2", "1", "Shop"), row("S3", "2", "Other")]
    assert analyze_rows(rows) == []


def test_missing_signature_and_mid():
    rows = [row("", "1"), row("  ", "2"), row("S3", ""), row("S4", "000")]
    issues = issues_by_kind(rows)

    assert len(issues[MISSING_SIGNATURE].affected_rows) == 2
    assert issues[MISSING_SIGNATURE].severity == SEVERITY_HIGH
    assert [r["serial"] for r in issues[MISSING_MID].affected_rows] == ["S3"]


def test_same_serial_same_merchant_is_duplicate_but_not_conflict():
    rows = [row("S1", "01", "Shop", "T1"), row("S1", "1", "Shop", "T2")]
    issues = issues_by_kind(rows)

    assert issues[DUPLICATE_SIGNATURE_GLOBAL].affected_rows == [{"serial": "S1", "count": 2}]
    assert DUPLICATE_SIGNATURE_CONFLICT not in issues


def test_serial_under_two_merchants_is_a_conflict():
    rows = [row("S1", "1", "Shop"), row("S1", "2", "Other"), row("S2", "3", "Third")]
    issues = issues_by_kind(rows)

    conflict = issues[DUPLICATE_SIGNATURE_CONFLICT]
    assert conflict.severity == SEVERITY_HIGH
    assert conflict.affected_rows == [{"serial": "S1", "mids": ["1", "2"]}]
    assert DUPLICATE_SIGNATURE_GLOBAL in issues


def test_inconsistent_merchant_names_are_medium():
    rows = [row("S1", "007", "Druk Mart"), row("S2", "7", "Druk Mart Ltd"), row("S3", "8", "")]
    issue = issues_by_kind(rows)[DUPLICATE_MID_INCONSISTENT_NAME]

    assert issue.severity == SEVERITY_MEDIUM
    assert issue.affected_rows == [{"mid": "7", "names": ["Druk Mart", "Druk Mart Ltd"]}]


def test_report_is_independent_of_row_order():
    rows = [
        row("S1", "1", "A"), row("S1", "2", "B"), row("", "3"),
        row("S2", "", "C"), row("S3", "1", "A2"), row("S3", "1", "A"),
    ]
    forward = [i.to_dict() for i in analyze_rows(rows)]
    backward = [i.to_dict() for i in analyze_rows(list(reversed(rows)))]
    assert forward == backward
    assert forward[0]["type"] == MISSING_SIGNATURE


def test_serial_in_three_rows_under_two_merchants():
    rows = [row("S1", "1", "Shop"), row("S1", "01", "Shop"), row("S1", "2", "Other")]
    issues = issues_by_kind(rows)

    assert issues[DUPLICATE_SIGNATURE_GLOBAL].affected_rows == [{"serial": "S1", "count": 3}]
    assert issues[DUPLICATE_SIGNATURE_CONFLICT].affected_rows == [{"serial": "S1", "mids": ["1", "2"]}]
