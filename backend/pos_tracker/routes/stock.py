# Overview: Flask API routes for terminal stock; parses input and returns JSON responses.

# backend/pos_tracker/routes/stock.py
"""
Terminal Stock API Routes

- GET  /api/stock/settings           - import lock, expected count, unit price
- PUT  /api/stock/settings           - update any of the above
- POST /api/stock/import             - add procured serials (locks when complete)
- GET  /api/stock/stats              - counts by status
- GET  /api/stock/terminals          - terminals with their open issuance
- POST /api/stock/issue              - IN_STOCK -> ISSUED
- POST /api/stock/return             - ISSUED -> IN_STOCK
- POST /api/stock/reset              - wipe stock and issuances, unlock import
- POST /api/stock/sync-assignments   - reconcile stock against the POS list

Error mapping:
    400 ValidationError / InvalidFormatError
    404 TerminalNotFoundError
    403 ImportLockedError
    409 StateConflictError
    500 ReconciliationFailed (batch rolled back)
"""

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..models import Issuance
from ..services import settings_service, stock_service
from ..services.stock_service import (
    ImportLockedError,
    ReconciliationFailed,
    StateConflictError,
    TerminalNotFoundError,
)
from ..validation import ModelValidationPolicy, ValidationError, validate_payload
from pos_tracker.time_utils import parse_iso_date


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")

ISSUE_POLICY = ModelValidationPolicy(
    writable_fields={"serial_number", "mid", "merchant_name", "tid", "issue_date", "issued_by", "notes"},
    required_on_create={"serial_number", "mid"},
)

RETURN_POLICY = ModelValidationPolicy(
    writable_fields={"serial_number", "return_date", "notes"},
    required_on_create={"serial_number"},
)


@stock_bp.get("/settings")
def get_settings_route():
    settings = settings_service.get_settings()
    db.session.commit()
    return jsonify(settings)


@stock_bp.put("/settings")
def update_settings_route():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict) or not payload:
        return jsonify({"error": "Expected a JSON object of settings"}), 400

    try:
        for key, value in payload.items():
            settings_service.set_setting(key, value)
        db.session.commit()
    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400

    return jsonify(settings_service.get_settings())


@stock_bp.post("/import")
def import_terminals_route():
    """
    Request body:
        {"serials": ["A1", "B2"], "batchName": "Batch 1", "procuredDate": "2026-02-01"}
    """
    data = request.get_json(silent=True) or {}
    try:
        procured_date = parse_iso_date(data.get("procuredDate") or data.get("procured_date"))
    except ValueError:
        return jsonify({"error": "procuredDate must be an ISO-8601 date"}), 400

    try:
        result = stock_service.import_terminals(
            data.get("serials"),
            batch_name=data.get("batchName") or data.get("batch_name"),
            procured_date=procured_date,
        )
        return jsonify(result), 200
    except ImportLockedError as e:
        return jsonify({"error": str(e)}), 403
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to import terminals")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/stats")
def stock_stats_route():
    return jsonify(stock_service.get_stock_stats())


@stock_bp.get("/terminals")
def list_terminals_route():
    try:
        rows = stock_service.list_terminals(
            status=request.args.get("status") or None,
            search=request.args.get("search") or None,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(rows)


@stock_bp.post("/issue")
def issue_terminal_route():
    """
    Issue an IN_STOCK terminal to a merchant.

    Request body:
        {"serial_number": "AB-100", "mid": "0091234", "merchant_name": "...",
         "tid": "T1", "issue_date": "2026-03-01", "issued_by": "...", "notes": "..."}
    """
    try:
        patch = validate_payload(
            model=Issuance,
            payload=request.get_json(silent=True) or {},
            policy=ISSUE_POLICY,
            partial=False,
        )
        serial_number = patch.pop("serial_number")
        issuance = stock_service.issue_terminal(serial_number, **patch)
        return jsonify({"success": True, "issuance": issuance.to_dict()}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except TerminalNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except StateConflictError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to issue terminal")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/return")
def return_terminal_route():
    """
    Request body:
        {"serial_number": "AB-100", "return_date": "2026-03-10", "notes": "..."}
    """
    try:
        patch = validate_payload(
            model=Issuance,
            payload=request.get_json(silent=True) or {},
            policy=RETURN_POLICY,
            partial=False,
        )
        serial_number = patch.pop("serial_number")
        terminal = stock_service.return_terminal(serial_number, **patch)
        return jsonify({"success": True, "terminal": terminal.to_dict()}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except TerminalNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except StateConflictError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to return terminal")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/reset")
def reset_stock_route():
    stock_service.reset_stock()
    return jsonify({"success": True})


@stock_bp.post("/sync-assignments")
def sync_assignments_route():
    """
    Reconcile stock with the current POS list.

    Request body:
        {"assignments": [{"serial": "AB-100", "mid": "01", "merchantName": "...", "tid": "T1"}, ...]}
    """
    data = request.get_json(silent=True) or {}
    try:
        result = stock_service.sync_assignments(data.get("assignments"))
        return jsonify({"success": True, **result.to_dict()}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ReconciliationFailed as e:
        return jsonify({"error": str(e)}), 500
