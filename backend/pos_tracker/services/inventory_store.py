# Overview: Store operations over terminals and issuances used inside one stock transaction.

"""
Inventory Store

The narrow set of reads and writes the reconciliation transaction needs.
None of these commit: callers own the transaction boundary, so a batch
either commits as a whole or is rolled back as a whole.
"""

from __future__ import annotations

from datetime import date

from sqlalchemy import func

from ..extensions import db
from ..models import Issuance, Terminal
from pos_tracker.time_utils import utcnow
from .concurrency import lock_for_update
from .identifier_service import normalize_serial


def find_terminal_by_serial(serial: str) -> Terminal | None:
    """Case/whitespace-insensitive lookup; the row is locked for the rest of the transaction."""
    key = normalize_serial(serial)
    if not key:
        return None
    q = db.session.query(Terminal).filter(func.upper(func.trim(Terminal.serial_number)) == key)
    return lock_for_update(q).first()


def find_open_issuance(serial_number: str, *, mid: str, tid: str) -> Issuance | None:
    return (
        db.session.query(Issuance)
        .filter(
            Issuance.serial_number == serial_number,
            Issuance.mid == mid,
            Issuance.tid == tid,
            Issuance.return_date.is_(None),
        )
        .first()
    )


def update_status(terminal: Terminal, status: str) -> None:
    terminal.status = status
    terminal.updated_at = utcnow()


def insert_issuance(
    *,
    serial_number: str,
    mid: str,
    merchant_name: str | None,
    tid: str | None,
    issue_date: date | None,
    issued_by: str | None = None,
    notes: str | None = None,
) -> Issuance:
    issuance = Issuance(
        serial_number=serial_number,
        mid=mid,
        merchant_name=merchant_name,
        tid=tid,
        issue_date=issue_date,
        issued_by=issued_by,
        notes=notes,
    )
    db.session.add(issuance)
    db.session.flush()
    return issuance


def close_open_issuance(serial_number: str, return_date: date, note: str) -> int:
    """Close every open issuance for the serial, appending `note`. Returns how many were closed."""
    open_rows = (
        db.session.query(Issuance)
        .filter(Issuance.serial_number == serial_number, Issuance.return_date.is_(None))
        .all()
    )
    for issuance in open_rows:
        issuance.return_date = return_date
        issuance.notes = f"{issuance.notes or ''}{note}"
    db.session.flush()
    return len(open_rows)


def count_all() -> int:
    return db.session.query(func.count(Terminal.id)).scalar() or 0
