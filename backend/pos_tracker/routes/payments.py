# Overview: Flask API routes for the payment ledger; parses input and returns JSON responses.

# backend/pos_tracker/routes/payments.py
"""
Payment Ledger API Routes

- GET    /api/payments          - list the ledger
- POST   /api/payments          - manual payment entry (pushed to the ledger sheet)
- DELETE /api/payments          - bulk clear
- POST   /api/payments/merge    - merge a pasted feed array
- POST   /api/payments/sync     - fetch the ledger feed and merge it
- POST   /api/payments/upload   - add rows from a CSV/Excel payment sheet
"""

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..services import payment_service
from ..services.ingestion_service import read_upload
from ..services.ledger_feed_service import LedgerFeedError
from ..services.payment_service import DuplicateReceiptError, PaymentError
from ..validation import ValidationError


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.get("")
def list_payments_route():
    return jsonify([p.to_dict() for p in payment_service.list_payments()])


@payments_bp.post("")
def record_payment_route():
    """
    Request body:
    {
        "merchant_id": "0091234",
        "receipt_ref": "FT2601",
        "date": "2026-03-01",
        "covered_serials": ["AB-100", "AB-101"],
        "amount": "33650",            (optional, defaults to unit price per serial)
        "merchant_name": "...", "location": "...", "contact": "...",
        "terminal_ids": ["T1", "T2"]  (optional, forwarded to the ledger sheet)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        record, pushed = payment_service.record_manual_payment(
            merchant_id=data.get("merchant_id"),
            receipt_ref=data.get("receipt_ref"),
            payment_date=data.get("date"),
            covered_serials=data.get("covered_serials") or [],
            amount=data.get("amount"),
            merchant_name=data.get("merchant_name"),
            location=data.get("location"),
            contact=data.get("contact"),
            terminal_ids=data.get("terminal_ids"),
        )
        return jsonify({"payment": record.to_dict(), "pushed": pushed}), 201
    except DuplicateReceiptError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PaymentError:
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.delete("")
def clear_payments_route():
    deleted = payment_service.clear_payments()
    return jsonify({"success": True, "deleted": deleted})


@payments_bp.post("/merge")
def merge_payments_route():
    data = request.get_json(silent=True)
    items = data.get("payments") if isinstance(data, dict) else data
    try:
        result = payment_service.merge_payment_feed(items)
        return jsonify(result.to_dict()), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PaymentError:
        current_app.logger.exception("Failed to merge payments")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/sync")
def sync_payments_route():
    try:
        result = payment_service.sync_from_feed()
        return jsonify(result.to_dict()), 200
    except LedgerFeedError as e:
        return jsonify(e.to_dict()), e.status_code
    except PaymentError:
        current_app.logger.exception("Failed to merge fetched payments")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/upload")
def upload_payments_route():
    if "file" not in request.files:
        return jsonify({"error": "file is required"}), 400

    file = request.files["file"]
    try:
        rows = read_upload(file.stream, file.filename or "")
        result = payment_service.import_payment_rows(rows)
        return jsonify(result), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PaymentError:
        db.session.rollback()
        current_app.logger.exception("Failed to store uploaded payments")
        return jsonify({"error": "Internal server error"}), 500
    except Exception:
        current_app.logger.exception("Failed to parse payment upload")
        return jsonify({"error": "Failed to parse upload"}), 400
