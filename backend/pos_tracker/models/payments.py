from __future__ import annotations

from ..extensions import db
from pos_tracker.time_utils import to_utc_z


class PaymentRecord(db.Model):
    """
    One merchant payment in the local ledger.

    receipt_key is the trimmed, lower-cased receipt reference and carries
    the uniqueness constraint; receipt_ref keeps the value as entered.
    amount_cents and covered_serials are never rewritten once the record
    exists, apart from the merchant-id backfill done by the feed merge.
    """
    __tablename__ = "payment_records"
    __table_args__ = (
        db.UniqueConstraint("receipt_key", name="uq_payment_records_receipt_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    receipt_ref = db.Column(db.String(128), nullable=False)
    receipt_key = db.Column(db.String(128), nullable=False)
    payment_date = db.Column(db.String(32), nullable=True)
    merchant_id = db.Column(db.String(64), nullable=False, default="", index=True)

    # Authoritative storage in cents
    amount_cents = db.Column(db.Integer, nullable=False)

    payment_type = db.Column(db.String(32), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    covered_serials = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<PaymentRecord ref={self.receipt_ref!r} mid={self.merchant_id!r} amount_cents={self.amount_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "receipt_ref": self.receipt_ref,
            "date": self.payment_date,
            "merchant_id": self.merchant_id,
            "amount_cents": self.amount_cents,
            "payment_type": self.payment_type,
            "notes": self.notes,
            "covered_serials": sorted(self.covered_serials or []),
            "created_at": to_utc_z(self.created_at),
        }
