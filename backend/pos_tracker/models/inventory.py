from __future__ import annotations

from ..extensions import db
from pos_tracker.time_utils import to_iso_date, to_utc_z


class Terminal(db.Model):
    """
    A physical payment terminal procured by the bank.

    SERIAL DESIGN DECISION:
    serial_number is stored in canonical form (trimmed, upper-cased) and is
    unique. Lookups from uploaded lists still compare UPPER(TRIM(...)) so rows
    written before normalization are found too.

    STATUS:
        IN_STOCK -> ISSUED -> (RETURNED -> IN_STOCK) | FAULTY | SCRAPPED
    """
    __tablename__ = "terminals"
    __table_args__ = (
        db.Index("ix_terminals_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    serial_number = db.Column(db.String(64), nullable=False, unique=True)
    model = db.Column(db.String(32), nullable=False, default="DX8000")
    batch_name = db.Column(db.String(128), nullable=True)
    procured_date = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(16), nullable=False, default="IN_STOCK")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Terminal serial={self.serial_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "serial_number": self.serial_number,
            "model": self.model,
            "batch_name": self.batch_name,
            "procured_date": to_iso_date(self.procured_date),
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Issuance(db.Model):
    """
    Assignment of a terminal to a merchant.

    An issuance is OPEN while return_date is NULL. At most one open issuance
    exists per serial; every path that opens one closes the previous first.
    """
    __tablename__ = "issuances"
    __table_args__ = (
        db.Index("ix_issuances_serial_open", "serial_number", "return_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    serial_number = db.Column(
        db.String(64), db.ForeignKey("terminals.serial_number"), nullable=False, index=True
    )
    mid = db.Column(db.String(64), nullable=False, index=True)
    merchant_name = db.Column(db.String(255), nullable=True)
    tid = db.Column(db.String(64), nullable=True)
    issue_date = db.Column(db.Date, nullable=True)
    return_date = db.Column(db.Date, nullable=True)
    issued_by = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    @property
    def is_open(self) -> bool:
        return self.return_date is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "serial_number": self.serial_number,
            "mid": self.mid,
            "merchant_name": self.merchant_name,
            "tid": self.tid,
            "issue_date": to_iso_date(self.issue_date),
            "return_date": to_iso_date(self.return_date),
            "issued_by": self.issued_by,
            "notes": self.notes,
        }
