# Overview: Merchant summaries, dashboard totals, data-quality issues, row search and Excel exports over a posted POS list.

from flask import Blueprint, request, jsonify, send_file

from ..extensions import db
from ..services import export_service, merchant_service, quality_service, payment_service, settings_service
from ..services.ingestion_service import TerminalAssignmentRow
from ..services.money import to_cents
from ..validation import ValidationError, require_list


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _rows_from_payload(data: dict) -> list[TerminalAssignmentRow]:
    rows = require_list(data.get("rows"), "rows")
    if not all(isinstance(r, dict) for r in rows):
        raise ValidationError("Every row must be an object")
    return [TerminalAssignmentRow.from_dict(r) for r in rows]


def _summaries(rows: list[TerminalAssignmentRow], unit_price_cents: int | None) -> tuple[list, int]:
    if unit_price_cents is None:
        unit_price_cents = settings_service.unit_price_cents()
    summaries = merchant_service.summarize_merchants(rows, payment_service.list_payments(), unit_price_cents)
    return summaries, unit_price_cents


def _unit_price_from_payload(data: dict) -> int | None:
    unit_price = data.get("unit_price")
    return to_cents(unit_price) if unit_price not in (None, "") else None


def build_report(rows: list[TerminalAssignmentRow], unit_price_cents: int | None = None) -> dict:
    summaries, unit_price_cents = _summaries(rows, unit_price_cents)
    issues = quality_service.analyze_rows(rows)
    return {
        "unit_price_cents": unit_price_cents,
        "totals": merchant_service.report_totals(summaries),
        "summaries": [s.to_dict() for s in summaries],
        "issues": [i.to_dict() for i in issues],
    }


@reports_bp.post("/summary")
def summary_route():
    """
    Request body:
        {"rows": [{"serial": "...", "mid": "...", "merchant_name": "...", "tid": "..."}],
         "unit_price": "16825"}   (optional, defaults to the unit_price setting)
    """
    data = request.get_json(silent=True) or {}
    try:
        rows = _rows_from_payload(data)
        unit_price_cents = _unit_price_from_payload(data)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    report = build_report(rows, unit_price_cents)
    db.session.commit()
    return jsonify(report)


@reports_bp.post("/search")
def search_route():
    data = request.get_json(silent=True) or {}
    try:
        rows = _rows_from_payload(data)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    matches = merchant_service.search_rows(rows, data.get("query") or "")
    return jsonify([r.to_dict() for r in matches])


@reports_bp.post("/export")
def export_route():
    """
    Excel download of merchant summaries.

    Request body:
        {"rows": [...], "unit_price": "16825", "kind": "outstanding" | "paid" | "full"}
    `kind` may also be given as a query parameter; it defaults to "full".
    """
    data = request.get_json(silent=True) or {}
    kind = request.args.get("kind") or data.get("kind") or export_service.EXPORT_FULL
    try:
        rows = _rows_from_payload(data)
        unit_price_cents = _unit_price_from_payload(data)
        summaries, _ = _summaries(rows, unit_price_cents)
        selected = export_service.select_summaries(summaries, kind)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    db.session.commit()
    return send_file(
        export_service.build_workbook(selected),
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        as_attachment=True,
        download_name=export_service.EXPORT_FILENAMES[kind],
    )
