import pytest

from pos_tracker.extensions import db
from pos_tracker.models import Issuance, Terminal
from pos_tracker.services import inventory_store, settings_service, stock_service
from pos_tracker.services.stock_service import (
    STATUS_IN_STOCK,
    STATUS_ISSUED,
    SYNC_AUTO_CLOSE_NOTE,
    ImportLockedError,
    ReconciliationFailed,
    StateConflictError,
    TerminalNotFoundError,
)
from pos_tracker.validation import InvalidFormatError


def open_issuances(serial):
    return (
        db.session.query(Issuance)
        .filter(Issuance.serial_number == serial, Issuance.return_date.is_(None))
        .all()
    )


# =============================================================================
# IMPORT
# =============================================================================

def test_import_skips_known_and_repeated_serials(db_session):
    result = stock_service.import_terminals(["A1", "a1 ", "B2"], batch_name="Batch 1")

    assert result["imported"] == 2
    assert result["skipped"] == 1
    assert result["total"] == 2
    assert result["locked"] is False
    assert {t.serial_number for t in db_session.query(Terminal).all()} == {"A1", "B2"}


def test_import_counts_blank_serials_as_errors(db_session):
    result = stock_service.import_terminals(["", "   ", "C3"])
    assert result["errors"] == 2
    assert result["imported"] == 1


def test_import_locks_when_expected_count_reached(db_session):
    settings_service.set_setting(settings_service.EXPECTED_COUNT, "2")
    db_session.commit()

    result = stock_service.import_terminals(["A1", "B2"])
    assert result["locked"] is True
    assert settings_service.is_import_locked()

    with pytest.raises(ImportLockedError):
        stock_service.import_terminals(["C3"])


def test_import_rejects_non_list(db_session):
    with pytest.raises(InvalidFormatError):
        stock_service.import_terminals("A1,B2")


# =============================================================================
# ISSUE / RETURN
# =============================================================================

def test_issue_then_return(db_session, stock):
    stock("AB-100")

    issuance = stock_service.issue_terminal("ab-100", mid="0091", merchant_name="Shop", tid="T1")
    assert issuance.mid == "91"
    assert db_session.query(Terminal).one().status == STATUS_ISSUED

    terminal = stock_service.return_terminal("AB-100", notes="Merchant closed")
    assert terminal.status == STATUS_IN_STOCK
    closed = db_session.query(Issuance).one()
    assert closed.return_date is not None
    assert closed.notes.endswith(" | Return Note: Merchant closed")


def test_issue_on_issued_terminal_changes_nothing(db_session, stock):
    stock("AB-100")
    stock_service.issue_terminal("AB-100", mid="1")

    with pytest.raises(StateConflictError):
        stock_service.issue_terminal("AB-100", mid="2")

    db_session.rollback()
    assert db_session.query(Terminal).one().status == STATUS_ISSUED
    assert [i.mid for i in db_session.query(Issuance).all()] == ["1"]


def test_return_requires_issued(db_session, stock):
    stock("AB-100")
    with pytest.raises(StateConflictError):
        stock_service.return_terminal("AB-100")
    assert db_session.query(Issuance).count() == 0


def test_unknown_serial(db_session):
    with pytest.raises(TerminalNotFoundError):
        stock_service.issue_terminal("NOPE", mid="1")


# =============================================================================
# RECONCILIATION
# =============================================================================

def test_sync_issues_new_assignments_and_counts_unknown(db_session, stock):
    stock("AB-100", "AB-101")

    result = stock_service.sync_assignments([
        {"serial": " ab-100 ", "mid": "0091", "merchantName": "Shop", "tid": "T1"},
        {"serial": "AB-101", "mid": "55", "tid": "T2"},
        {"serial": "ZZ-999", "mid": "55"},
    ])

    assert result.to_dict() == {"updated": 2, "ignored": 0, "not_found": 1}
    assert db_session.query(Terminal).filter_by(status=STATUS_ISSUED).count() == 2
    assert open_issuances("AB-100")[0].mid == "91"


def test_sync_twice_is_a_no_op(db_session, stock):
    stock("AB-100", "AB-101")
    assignments = [
        {"serial": "AB-100", "mid": "1", "tid": "T1"},
        {"serial": "AB-101", "mid": "2", "tid": "T2"},
    ]

    stock_service.sync_assignments(assignments)
    second = stock_service.sync_assignments(assignments)

    assert second.updated == 0
    assert second.ignored == 2
    assert db_session.query(Issuance).count() == 2


def test_sync_reassignment_closes_previous_issuance(db_session, stock):
    stock("AB-100")
    stock_service.sync_assignments([{"serial": "AB-100", "mid": "01", "tid": "T1"}])

    result = stock_service.sync_assignments([{"serial": "AB-100", "mid": "02", "tid": "T1"}])
    assert result.updated == 1

    rows = db_session.query(Issuance).order_by(Issuance.id).all()
    assert len(rows) == 2
    assert rows[0].mid == "1"
    assert rows[0].return_date is not None
    assert rows[0].notes.endswith(SYNC_AUTO_CLOSE_NOTE)
    assert rows[1].mid == "2"
    assert [i.id for i in open_issuances("AB-100")] == [rows[1].id]


def test_sync_handles_a_serial_once_per_batch(db_session, stock):
    stock("AB-100")
    result = stock_service.sync_assignments([
        {"serial": "AB-100", "mid": "1", "tid": "T1"},
        {"serial": "ab-100", "mid": "1", "tid": "T2"},
        {"serial": "", "mid": "1"},
    ])

    assert result.updated == 1
    assert result.ignored == 2
    assert len(open_issuances("AB-100")) == 1


def test_sync_rolls_back_whole_batch_on_store_error(db_session, stock, monkeypatch):
    stock("AB-100", "AB-101")
    real_insert = inventory_store.insert_issuance
    calls = []

    def flaky_insert(**kwargs):
        calls.append(kwargs["serial_number"])
        if len(calls) == 2:
            raise RuntimeError("disk full")
        return real_insert(**kwargs)

    monkeypatch.setattr(inventory_store, "insert_issuance", flaky_insert)

    with pytest.raises(ReconciliationFailed):
        stock_service.sync_assignments([
            {"serial": "AB-100", "mid": "1", "tid": "T1"},
            {"serial": "AB-101", "mid": "2", "tid": "T2"},
        ])

    assert db_session.query(Issuance).count() == 0
    assert db_session.query(Terminal).filter_by(status=STATUS_ISSUED).count() == 0


def test_sync_rejects_non_list_before_touching_anything(db_session, stock):
    stock("AB-100")
    with pytest.raises(InvalidFormatError):
        stock_service.sync_assignments({"serial": "AB-100"})
    assert db_session.query(Issuance).count() == 0


# =============================================================================
# ADMIN / READS
# =============================================================================

def test_reset_clears_stock_and_unlocks(db_session, stock):
    stock("AB-100")
    stock_service.issue_terminal("AB-100", mid="1")
    settings_service.set_setting(settings_service.IMPORT_LOCKED, "true")
    db_session.commit()

    stock_service.reset_stock()

    assert db_session.query(Terminal).count() == 0
    assert db_session.query(Issuance).count() == 0
    assert not settings_service.is_import_locked()


def test_stats_and_listing(db_session, stock):
    stock("AB-100", "AB-101", "AB-102")
    stock_service.issue_terminal("AB-101", mid="0091", merchant_name="Druk Mart", tid="T1")

    stats = stock_service.get_stock_stats()
    assert stats["total"] == 3
    assert stats["in_stock"] == 2
    assert stats["issued"] == 1

    issued = stock_service.list_terminals(status=STATUS_ISSUED)
    assert [t["serial_number"] for t in issued] == ["AB-101"]
    assert issued[0]["mid"] == "91"

    assert [t["serial_number"] for t in stock_service.list_terminals(search="druk")] == ["AB-101"]
    assert len(stock_service.list_terminals()) == 3
