# Overview: Proxy routes for the ledger sheet (the browser cannot call Apps Script directly).

from flask import Blueprint, request, jsonify

from ..services import ledger_feed_service
from ..services.ledger_feed_service import LedgerFeedError


cloud_bp = Blueprint("cloud", __name__, url_prefix="/api/cloud")


@cloud_bp.get("/fetch")
def fetch_route():
    try:
        data = ledger_feed_service.fetch_feed(action=request.args.get("action") or None)
        return jsonify(data), 200
    except LedgerFeedError as e:
        return jsonify(e.to_dict()), e.status_code


@cloud_bp.post("/sync")
def sync_route():
    try:
        ledger_feed_service.push_payment(request.get_json(silent=True) or {})
        return jsonify({"success": True}), 200
    except LedgerFeedError as e:
        return jsonify(e.to_dict()), e.status_code


@cloud_bp.get("/health")
def health_route():
    try:
        result = ledger_feed_service.probe_feed()
    except LedgerFeedError as e:
        return jsonify({"ok": False, **e.to_dict()}), e.status_code
    return jsonify(result), 200 if "error" not in result else 500
