# Overview: Service-layer operations for the merchant payment ledger; encapsulates business logic and database work.

"""
Payment Ledger Service

WHY: Merchants pay for their terminals by bank transfer. Payments reach the
tracker three ways: the bank's ledger sheet (fetched periodically), CSV
uploads, and manual entry by an operator. The ledger must not double-count
a transfer no matter how often the same sheet is fetched.

DESIGN PRINCIPLES:
- receipt_key (trimmed, lower-cased receipt reference) is unique
- each source has an explicit table of candidate field names
- merging the same feed twice adds nothing the second time
- a record that arrived without a merchant id is backfilled by the feed;
  a record that already has one is never rewritten
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import PaymentRecord
from ..validation import ConflictError, ValidationError, require_list
from .identifier_service import normalize_merchant_id, receipt_key
from .ledger_feed_service import LedgerFeedError, fetch_feed, push_payment
from .money import parse_amount_cents, to_cents
from . import settings_service


class PaymentError(Exception):
    """Raised when the ledger could not be written."""
    pass


class DuplicateReceiptError(ConflictError):
    """Receipt reference already used by another payment."""


# =============================================================================
# SOURCES AND FIELD CANDIDATES
# =============================================================================

SOURCE_FEED = "feed"
SOURCE_CSV = "csv"

PAYMENT_TYPE_FEED = "Cloud Sync"
PAYMENT_TYPE_CSV = "CSV Import"
PAYMENT_TYPE_MANUAL = "Manual Entry"

# Canonical field -> source field names, tried in order; first non-blank wins.
FIELD_CANDIDATES: dict[str, dict[str, tuple[str, ...]]] = {
    SOURCE_FEED: {
        "merchant_id": ("merchantId", "merchantID", "mid"),
        "receipt_ref": ("bankingReferenceNumber", "receiptRef", "referenceNumber"),
        "date": ("dateOfPayment", "date"),
        "amount": ("amountPaid", "amount"),
        "covered_serials": ("serialNumbers", "serial_numbers"),
        "payment_type": (),
        "notes": (),
        "credited_to": ("creditedToAccount",),
    },
    SOURCE_CSV: {
        "merchant_id": ("MID", "mid"),
        "receipt_ref": ("ReceiptRef", "receipt"),
        "date": ("Date", "date"),
        "amount": ("Amount", "amount"),
        "covered_serials": (),
        "payment_type": ("PaymentType", "type"),
        "notes": ("Notes", "notes"),
        "credited_to": (),
    },
}

DEFAULT_PAYMENT_TYPE = {SOURCE_FEED: PAYMENT_TYPE_FEED, SOURCE_CSV: PAYMENT_TYPE_CSV}


@dataclass
class IncomingPayment:
    receipt_ref: str
    receipt_key: str
    date: str
    merchant_id: str
    amount_cents: int | None
    payment_type: str
    notes: str
    covered_serials: list[str] = field(default_factory=list)

    def to_record(self) -> PaymentRecord:
        return PaymentRecord(
            receipt_ref=self.receipt_ref,
            receipt_key=self.receipt_key,
            payment_date=self.date,
            merchant_id=self.merchant_id,
            amount_cents=self.amount_cents or 0,
            payment_type=self.payment_type,
            notes=self.notes,
            covered_serials=list(self.covered_serials),
        )


@dataclass
class MergeResult:
    added: int = 0
    updated: int = 0
    discarded: int = 0

    def to_dict(self) -> dict:
        return {"added_count": self.added, "updated_count": self.updated, "discarded_count": self.discarded}


def _first(item: dict, names: tuple[str, ...]) -> Any:
    for name in names:
        value = item.get(name)
        if value not in (None, ""):
            return value
    return None


def _split_serials(value: Any) -> list[str]:
    if value in (None, ""):
        return []
    parts = value if isinstance(value, list) else str(value).split(",")
    return [str(p).strip() for p in parts if str(p).strip()]


def extract_payment(item: Any, source: str) -> IncomingPayment | None:
    """Pull the canonical fields out of one raw row; None if it is not an object."""
    if not isinstance(item, dict):
        return None
    names = FIELD_CANDIDATES[source]

    ref = str(_first(item, names["receipt_ref"]) or "").strip()
    if source == SOURCE_FEED:
        notes = f"Synced from Google Sheets. Credited to: {_first(item, names['credited_to']) or 'N/A'}"
    else:
        notes = str(_first(item, names["notes"]) or "")

    return IncomingPayment(
        receipt_ref=ref,
        receipt_key=receipt_key(ref),
        date=str(_first(item, names["date"]) or "").strip(),
        merchant_id=normalize_merchant_id(_first(item, names["merchant_id"])),
        amount_cents=parse_amount_cents(_first(item, names["amount"])),
        payment_type=str(_first(item, names["payment_type"]) or DEFAULT_PAYMENT_TYPE[source]),
        notes=notes,
        covered_serials=_split_serials(_first(item, names["covered_serials"])),
    )


def _ledger_by_key() -> dict[str, PaymentRecord]:
    return {p.receipt_key: p for p in db.session.query(PaymentRecord).all()}


def _commit(what: str) -> None:
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error("[Payments] %s failed, rolled back: %s", what, exc)
        raise PaymentError(f"{what} failed: {exc}") from exc


# =============================================================================
# FEED MERGE
# =============================================================================

def merge_payment_feed(items: Any, *, source: str = SOURCE_FEED) -> MergeResult:
    """
    Fold a batch of raw payment rows into the ledger.

    Rows without a receipt reference or merchant id, or with a non-positive
    amount, are discarded. For each remaining row, keyed by receipt_key:
    - unknown key                         -> new record (added)
    - known key, stored merchant id blank -> backfill merchant id/amount (updated)
    - known key with a merchant id        -> left alone (re-delivery)

    The key map is updated after every insert/backfill, so a receipt repeated
    inside one batch is only added once.

    Raises:
        InvalidFormatError: items is not a list
        PaymentError: the ledger write failed (nothing is kept)
    """
    require_list(items, "payments")
    result = MergeResult()
    ledger = _ledger_by_key()

    for item in items:
        incoming = extract_payment(item, source)
        if (
            incoming is None
            or not incoming.receipt_key
            or not incoming.merchant_id
            or not incoming.amount_cents
            or incoming.amount_cents <= 0
        ):
            result.discarded += 1
            continue

        current = ledger.get(incoming.receipt_key)
        if current is None:
            record = incoming.to_record()
            db.session.add(record)
            ledger[incoming.receipt_key] = record
            result.added += 1
        elif not current.merchant_id and incoming.merchant_id:
            current.merchant_id = incoming.merchant_id
            current.amount_cents = incoming.amount_cents or current.amount_cents
            result.updated += 1

    _commit("Payment merge")
    current_app.logger.info(
        "[Payments] Processed %d records. Added %d, updated %d payments.",
        len(items), result.added, result.updated,
    )
    return result


def sync_from_feed(*, transport: httpx.BaseTransport | None = None) -> MergeResult:
    """Fetch the ledger feed and merge it. A failed fetch raises before anything is merged."""
    data = fetch_feed(transport=transport)
    return merge_payment_feed(data, source=SOURCE_FEED)


# =============================================================================
# CSV UPLOAD
# =============================================================================

def import_payment_rows(rows: Any) -> dict:
    """
    Add rows from an uploaded payment sheet.

    Only a receipt reference is required; rows may lack a merchant id (the
    feed backfills it later). Receipts already in the ledger are skipped.
    """
    require_list(rows, "payments")
    ledger = _ledger_by_key()
    added = skipped = 0

    for row in rows:
        incoming = extract_payment(row, SOURCE_CSV)
        if incoming is None or not incoming.receipt_key or incoming.receipt_key in ledger:
            skipped += 1
            continue
        record = incoming.to_record()
        db.session.add(record)
        ledger[incoming.receipt_key] = record
        added += 1

    _commit("Payment upload")
    return {"added_count": added, "skipped_count": skipped}


# =============================================================================
# MANUAL ENTRY
# =============================================================================

def record_manual_payment(
    *,
    merchant_id: str,
    receipt_ref: str,
    payment_date: str,
    covered_serials: list[str],
    amount: Any = None,
    merchant_name: str | None = None,
    location: str | None = None,
    contact: str | None = None,
    terminal_ids: list[str] | None = None,
    transport: httpx.BaseTransport | None = None,
) -> tuple[PaymentRecord, bool]:
    """
    Record a payment keyed in by an operator, then push it to the ledger sheet.

    The amount defaults to one unit price per covered serial. A failed push
    is logged and the local record stands.

    Returns:
        (record, pushed)

    Raises:
        ValidationError: missing serials, reference, date, merchant id or bad amount
        DuplicateReceiptError: receipt reference already in the ledger
    """
    serials = [s for s in (str(x).strip() for x in (covered_serials or [])) if s]
    if not serials:
        raise ValidationError("Select at least one terminal to pay for")

    ref = (receipt_ref or "").strip()
    date = (payment_date or "").strip()
    if not ref or not date:
        raise ValidationError("receipt_ref and date are required")

    mid = normalize_merchant_id(merchant_id)
    if not mid:
        raise ValidationError("merchant_id is required")

    try:
        amount_cents = to_cents(amount) if amount not in (None, "") else len(serials) * settings_service.unit_price_cents()
    except ValueError as e:
        raise ValidationError(str(e))
    if amount_cents <= 0:
        raise ValidationError("Payment amount must be positive")

    key = receipt_key(ref)
    if db.session.query(PaymentRecord).filter_by(receipt_key=key).first():
        raise DuplicateReceiptError(
            f'Reference number "{ref}" has already been used. Each payment must have a unique reference.'
        )

    account = current_app.config.get("CREDITED_TO_ACCOUNT") or "N/A"
    record = PaymentRecord(
        receipt_ref=ref,
        receipt_key=key,
        payment_date=date,
        merchant_id=mid,
        amount_cents=amount_cents,
        payment_type=PAYMENT_TYPE_MANUAL,
        notes=f"Payment for {len(serials)} terminal(s). Credited to account: {account}",
        covered_serials=serials,
    )
    db.session.add(record)
    _commit("Manual payment")

    payload = {
        "dateOfPayment": date,
        "merchantName": merchant_name or "Unknown",
        "merchantId": mid,
        "location": location or "N/A",
        "contactNo": contact or "N/A",
        "bankingReferenceNumber": ref,
        "amountPaid": f"{amount_cents / 100:.2f}",
        "quantity": len(serials),
        "creditedToAccount": account,
        "terminalIds": ", ".join(terminal_ids or []),
        "serialNumbers": ", ".join(serials),
    }
    try:
        push_payment(payload, transport=transport)
        pushed = True
    except LedgerFeedError as exc:
        current_app.logger.warning("[Payments] Push to ledger sheet failed, payment kept locally: %s", exc)
        pushed = False

    return record, pushed


# =============================================================================
# READS / BULK CLEAR
# =============================================================================

def list_payments() -> list[PaymentRecord]:
    return db.session.query(PaymentRecord).order_by(PaymentRecord.id).all()


def clear_payments() -> int:
    """Delete every payment record (the operator's bulk-clear action)."""
    deleted = db.session.query(PaymentRecord).delete()
    db.session.commit()
    current_app.logger.warning("[Payments] Cleared %d payment records", deleted)
    return deleted
