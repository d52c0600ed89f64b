from openpyxl import Workbook

from pos_tracker.models import PaymentRecord, Terminal
from pos_tracker.services.payment_service import merge_payment_feed


def test_stock_import_from_text_file(app, db_session, tmp_path):
    path = tmp_path / "serials.txt"
    path.write_text("AB-1\nab-1\n\nAB-2\n", encoding="utf-8")

    result = app.test_cli_runner().invoke(args=["stock", "import", str(path), "--batch", "Batch 1", "--date", "2026-02-01"])

    assert result.exit_code == 0, result.output
    assert "Imported 2, skipped 1" in result.output
    terminal = db_session.query(Terminal).filter_by(serial_number="AB-1").one()
    assert terminal.batch_name == "Batch 1"
    assert terminal.procured_date.isoformat() == "2026-02-01"


def test_stock_import_from_workbook_uses_serial_column(app, db_session, tmp_path):
    wb = Workbook()
    wb.active.append(["No", "Serial Number"])
    wb.active.append([1, "AB-9"])
    path = tmp_path / "serials.xlsx"
    wb.save(path)

    result = app.test_cli_runner().invoke(args=["stock", "import", str(path)])

    assert result.exit_code == 0, result.output
    assert [t.serial_number for t in db_session.query(Terminal).all()] == ["AB-9"]


def test_stock_stats_and_reset(app, db_session, stock):
    stock("AB-1", "AB-2")
    runner = app.test_cli_runner()

    result = runner.invoke(args=["stock", "stats"])
    assert "Total: 2 / 600 expected (import open)" in result.output

    result = runner.invoke(args=["stock", "reset", "--yes"])
    assert result.exit_code == 0
    assert db_session.query(Terminal).count() == 0


def test_payments_clear(app, db_session):
    merge_payment_feed([{"bankingReferenceNumber": "R1", "merchantId": "1", "amountPaid": "5"}])

    result = app.test_cli_runner().invoke(args=["payments", "clear", "--yes"])

    assert "Deleted 1 payment records." in result.output
    assert db_session.query(PaymentRecord).count() == 0


def test_stock_import_reports_unreadable_file(app, db_session, tmp_path):
    path = tmp_path / "serials.json"
    path.write_text("[1, 2]", encoding="utf-8")

    result = app.test_cli_runner().invoke(args=["stock", "import", str(path)])

    assert result.exit_code != 0
    assert "list of row objects" in result.output
    assert db_session.query(Terminal).count() == 0
