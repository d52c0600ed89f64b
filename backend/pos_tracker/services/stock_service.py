# Overview: Service-layer operations for terminal stock; encapsulates business logic and database work.

"""
Terminal Stock Service

================================================================================
PURPOSE: Keep the terminal inventory and its issuance history in step with
procurement imports, manual issue/return commands and the uploaded POS list.
================================================================================

STATE MACHINE:
    IN_STOCK -> ISSUED -> (RETURNED -> IN_STOCK) | FAULTY | SCRAPPED

    issue:  only from IN_STOCK, opens an issuance
    return: only from ISSUED, back to IN_STOCK, closes the open issuance
    FAULTY / SCRAPPED are set administratively, outside this service

RECONCILIATION (sync_assignments):
    The uploaded POS list is the source of truth for who holds which serial.
    Every upload replays the full list against the store inside ONE
    transaction. Re-running an unchanged list is a no-op (everything counts
    as ignored); a serial that moved merchants gets its old issuance closed
    and a new one opened. Any store error rolls the whole batch back.

INVARIANT: at most one open issuance (return_date IS NULL) per serial.
================================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any

from flask import current_app
from sqlalchemy import and_, func

from ..extensions import db
from ..models import Issuance, Terminal
from ..validation import ConflictError, InvalidFormatError, ValidationError, require_list
from pos_tracker.time_utils import to_iso_date, today
from . import inventory_store
from . import settings_service
from .concurrency import run_with_retry
from .identifier_service import normalize_merchant_id, normalize_serial
from .ingestion_service import TerminalAssignmentRow


STATUS_IN_STOCK = "IN_STOCK"
STATUS_ISSUED = "ISSUED"
STATUS_RETURNED = "RETURNED"
STATUS_FAULTY = "FAULTY"
STATUS_SCRAPPED = "SCRAPPED"

VALID_STATUSES = {STATUS_IN_STOCK, STATUS_ISSUED, STATUS_RETURNED, STATUS_FAULTY, STATUS_SCRAPPED}

VALID_TRANSITIONS = {
    (STATUS_IN_STOCK, STATUS_ISSUED),
    (STATUS_ISSUED, STATUS_IN_STOCK),
    (STATUS_ISSUED, STATUS_RETURNED),
    (STATUS_RETURNED, STATUS_IN_STOCK),
    (STATUS_ISSUED, STATUS_FAULTY),
    (STATUS_ISSUED, STATUS_SCRAPPED),
}

SYNC_ISSUED_BY = "System Sync"
SYNC_ISSUE_NOTE = "Imported from Master POS List"
SYNC_AUTO_CLOSE_NOTE = " | Auto-closed by POS Sync"


class StateConflictError(ConflictError):
    """Issue/return attempted on a terminal that is not in the required state."""


class ImportLockedError(ConflictError):
    """Procurement import is locked (expected stock size reached)."""


class TerminalNotFoundError(ValueError):
    """No terminal with the given serial exists in stock."""


class ReconciliationFailed(Exception):
    """The store failed mid-batch; the whole batch was rolled back."""


@dataclass
class SyncResult:
    updated: int = 0
    ignored: int = 0
    not_found: int = 0

    def to_dict(self) -> dict:
        return {"updated": self.updated, "ignored": self.ignored, "not_found": self.not_found}


def validate_status(status: str) -> None:
    if status not in VALID_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(sorted(VALID_STATUSES))}"
        )


def can_transition(from_status: str, to_status: str) -> bool:
    validate_status(from_status)
    validate_status(to_status)
    return (from_status, to_status) in VALID_TRANSITIONS


# =============================================================================
# PROCUREMENT IMPORT
# =============================================================================

def import_terminals(
    serials: Any,
    *,
    batch_name: str | None = None,
    procured_date: date | None = None,
) -> dict:
    """
    Add procured serials to stock as IN_STOCK.

    Serials already in stock, or repeated within the batch, are skipped;
    blank or over-long serials count as errors. Once the stock reaches the
    expected procurement count the import locks itself.

    Raises:
        ImportLockedError: import is locked
        InvalidFormatError: serials is not a list
    """
    if settings_service.is_import_locked():
        raise ImportLockedError("Procurement import is locked.")
    require_list(serials, "serials")

    known = {normalize_serial(s) for (s,) in db.session.query(Terminal.serial_number).all()}
    imported = skipped = errors = 0

    for raw in serials:
        serial = normalize_serial(raw)
        if not serial or len(serial) > Terminal.serial_number.type.length:
            errors += 1
            continue
        if serial in known:
            skipped += 1
            continue
        db.session.add(
            Terminal(
                serial_number=serial,
                batch_name=batch_name,
                procured_date=procured_date,
                status=STATUS_IN_STOCK,
            )
        )
        known.add(serial)
        imported += 1

    db.session.commit()

    total = inventory_store.count_all()
    locked = False
    if total >= settings_service.expected_procurement_count():
        settings_service.set_setting(settings_service.IMPORT_LOCKED, "true")
        db.session.commit()
        locked = True
        current_app.logger.info("[Stock Import] Expected count reached (%d); import locked", total)

    current_app.logger.info(
        "[Stock Import] %d imported, %d skipped, %d errors, %d total", imported, skipped, errors, total
    )
    return {"imported": imported, "skipped": skipped, "errors": errors, "total": total, "locked": locked}


# =============================================================================
# ISSUE / RETURN
# =============================================================================

def _get_terminal(serial_number: str) -> Terminal:
    terminal = inventory_store.find_terminal_by_serial(serial_number)
    if terminal is None:
        raise TerminalNotFoundError(f"Terminal {serial_number!r} not found in stock")
    return terminal


def issue_terminal(
    serial_number: str,
    *,
    mid: str,
    merchant_name: str | None = None,
    tid: str | None = None,
    issue_date: date | None = None,
    issued_by: str | None = None,
    notes: str | None = None,
) -> Issuance:
    """
    Issue an IN_STOCK terminal to a merchant (IN_STOCK -> ISSUED).

    Raises:
        TerminalNotFoundError: unknown serial
        StateConflictError: terminal is not IN_STOCK (nothing is changed)
        ValidationError: merchant id missing
    """
    terminal = _get_terminal(serial_number)
    if not can_transition(terminal.status, STATUS_ISSUED):
        raise StateConflictError(
            f"Terminal {terminal.serial_number} is not available for issuance: "
            f"current status is '{terminal.status}', must be '{STATUS_IN_STOCK}'"
        )

    normalized_mid = normalize_merchant_id(mid)
    if not normalized_mid:
        raise ValidationError("mid is required")

    inventory_store.update_status(terminal, STATUS_ISSUED)
    issuance = inventory_store.insert_issuance(
        serial_number=terminal.serial_number,
        mid=normalized_mid,
        merchant_name=merchant_name,
        tid=tid,
        issue_date=issue_date or today(),
        issued_by=issued_by,
        notes=notes,
    )
    db.session.commit()
    return issuance


def return_terminal(
    serial_number: str,
    *,
    return_date: date | None = None,
    notes: str | None = None,
) -> Terminal:
    """
    Take an ISSUED terminal back into stock (ISSUED -> IN_STOCK).

    Raises:
        TerminalNotFoundError: unknown serial
        StateConflictError: terminal is not ISSUED (nothing is changed)
    """
    terminal = _get_terminal(serial_number)
    if terminal.status != STATUS_ISSUED:
        raise StateConflictError(
            f"Terminal {terminal.serial_number} is not currently issued: "
            f"current status is '{terminal.status}', must be '{STATUS_ISSUED}'"
        )

    inventory_store.update_status(terminal, STATUS_IN_STOCK)
    inventory_store.close_open_issuance(
        terminal.serial_number,
        return_date or today(),
        f" | Return Note: {notes or 'Returned to stock'}",
    )
    db.session.commit()
    return terminal


# =============================================================================
# RECONCILIATION WITH THE UPLOADED POS LIST
# =============================================================================

def _coerce_event(item: Any) -> TerminalAssignmentRow:
    if isinstance(item, TerminalAssignmentRow):
        return item
    if isinstance(item, dict):
        return TerminalAssignmentRow.from_dict(item)
    raise InvalidFormatError("Invalid assignments format: every assignment must be an object")


def sync_assignments(assignments: Any) -> SyncResult:
    """
    Replay the full current assignment list against the stock, atomically.

    Per event:
    1. blank serial, or a serial already handled earlier in this batch -> ignored
    2. serial not in stock                                             -> not_found
    3. open issuance with the same (serial, mid, tid) exists           -> ignored
    4. otherwise close any open issuance for the serial, mark the
       terminal ISSUED and open a new issuance                         -> updated

    Raises:
        InvalidFormatError: assignments is not a list of objects (nothing touched)
        ReconciliationFailed: the store raised mid-batch (everything rolled back)
    """
    require_list(assignments, "assignments")
    events = [_coerce_event(item) for item in assignments]
    logger = current_app.logger
    logger.info("[Stock Sync] Starting sync for %d assignments...", len(events))

    def _op() -> SyncResult:
        result = SyncResult()
        handled: set[str] = set()
        issue_date = today()

        for event in events:
            serial = normalize_serial(event.serial)
            if not serial or serial in handled:
                result.ignored += 1
                continue
            handled.add(serial)

            terminal = inventory_store.find_terminal_by_serial(serial)
            if terminal is None:
                result.not_found += 1
                continue

            db_serial = terminal.serial_number
            mid = normalize_merchant_id(event.merchant_id)
            tid = event.terminal_id.strip()

            if inventory_store.find_open_issuance(db_serial, mid=mid, tid=tid) is not None:
                result.ignored += 1
                continue

            # Terminal moved (or was never issued): close whatever is open first.
            inventory_store.close_open_issuance(db_serial, issue_date, SYNC_AUTO_CLOSE_NOTE)
            inventory_store.update_status(terminal, STATUS_ISSUED)
            inventory_store.insert_issuance(
                serial_number=db_serial,
                mid=mid,
                merchant_name=event.merchant_name,
                tid=tid,
                issue_date=issue_date,
                issued_by=SYNC_ISSUED_BY,
                notes=SYNC_ISSUE_NOTE,
            )
            result.updated += 1

        db.session.commit()
        return result

    try:
        result = run_with_retry(_op)
    except Exception as exc:
        db.session.rollback()
        logger.error("[Stock Sync] Error, batch rolled back: %s", exc)
        raise ReconciliationFailed(f"Stock sync failed and was rolled back: {exc}") from exc

    logger.info(
        "[Stock Sync] Completed: %d updated, %d ignored, %d not found in stock.",
        result.updated, result.ignored, result.not_found,
    )
    return result


# =============================================================================
# ADMIN / READS
# =============================================================================

def reset_stock() -> None:
    """Delete all terminals and issuances and unlock the procurement import."""
    db.session.query(Issuance).delete()
    db.session.query(Terminal).delete()
    settings_service.set_setting(settings_service.IMPORT_LOCKED, "false")
    db.session.commit()
    current_app.logger.warning("[Stock Reset] All terminal and issuance data deleted")


def get_stock_stats() -> dict:
    counts = dict(
        db.session.query(Terminal.status, func.count(Terminal.id)).group_by(Terminal.status).all()
    )
    return {
        "total": sum(counts.values()),
        "in_stock": counts.get(STATUS_IN_STOCK, 0),
        "issued": counts.get(STATUS_ISSUED, 0),
        "returned": counts.get(STATUS_RETURNED, 0),
        "faulty": counts.get(STATUS_FAULTY, 0),
        "scrapped": counts.get(STATUS_SCRAPPED, 0),
    }


def list_terminals(*, status: str | None = None, search: str | None = None) -> list[dict]:
    """Terminals with their open issuance (if any), optionally filtered."""
    q = db.session.query(Terminal, Issuance).outerjoin(
        Issuance,
        and_(Issuance.serial_number == Terminal.serial_number, Issuance.return_date.is_(None)),
    )

    if status:
        validate_status(status)
        q = q.filter(Terminal.status == status)

    if search:
        like = f"%{search.strip()}%"
        q = q.filter(
            db.or_(
                Terminal.serial_number.ilike(like),
                Issuance.mid.ilike(like),
                Issuance.merchant_name.ilike(like),
            )
        )

    rows = []
    for terminal, issuance in q.order_by(Terminal.serial_number).all():
        data = terminal.to_dict()
        data.update({
            "mid": issuance.mid if issuance else None,
            "merchant_name": issuance.merchant_name if issuance else None,
            "tid": issuance.tid if issuance else None,
            "issue_date": to_iso_date(issuance.issue_date) if issuance else None,
        })
        rows.append(data)
    return rows
