# Overview: POS list upload; maps columns, reconciles stock and reports on the list.

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..services import ingestion_service, stock_service
from ..services.stock_service import ReconciliationFailed
from ..validation import ValidationError
from .reports import build_report


assignments_bp = Blueprint("assignments", __name__, url_prefix="/api/assignments")


@assignments_bp.post("/upload")
def upload_assignments_route():
    """
    Multipart upload of the POS list (CSV, JSON or Excel).

    Excel workbooks are read from the "New POS LIST" sheet when present.
    Optional form field `mapping` (JSON object) overrides the guessed columns.
    """
    if "file" not in request.files:
        return jsonify({"error": "file is required"}), 400

    file = request.files["file"]
    try:
        raw_rows = ingestion_service.read_upload(
            file.stream, file.filename or "", sheet_name=ingestion_service.POS_LIST_SHEET
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to parse POS list upload")
        return jsonify({"error": "Failed to parse upload"}), 400

    if not raw_rows:
        return jsonify({"error": "Upload contains no rows"}), 400

    columns = list(raw_rows[0].keys())
    try:
        mapping = ingestion_service.auto_map_columns(columns)
        override = request.form.get("mapping")
        if override:
            mapping.update(ingestion_service.parse_mapping_override(override, columns))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    rows = ingestion_service.map_assignment_rows(raw_rows, mapping)

    try:
        sync = stock_service.sync_assignments(rows)
    except ReconciliationFailed as e:
        return jsonify({"error": str(e)}), 500

    report = build_report(rows)
    db.session.commit()
    return jsonify({
        "columns": columns,
        "mapping": mapping,
        "row_count": len(rows),
        "sync": sync.to_dict(),
        **report,
    }), 200
