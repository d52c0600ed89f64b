"""Terminal stock, issuances, payment ledger and settings

Revision ID: 20261001_terminal_tracker
Revises:
Create Date: 2026-10-01 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261001_terminal_tracker"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "terminals",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("serial_number", sa.String(length=64), nullable=False),
        sa.Column("model", sa.String(length=32), nullable=False, server_default="DX8000"),
        sa.Column("batch_name", sa.String(length=128), nullable=True),
        sa.Column("procured_date", sa.Date(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="IN_STOCK"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("serial_number"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_terminals_status", "terminals", ["status"], unique=False)

    op.create_table(
        "issuances",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("serial_number", sa.String(length=64), nullable=False),
        sa.Column("mid", sa.String(length=64), nullable=False),
        sa.Column("merchant_name", sa.String(length=255), nullable=True),
        sa.Column("tid", sa.String(length=64), nullable=True),
        sa.Column("issue_date", sa.Date(), nullable=True),
        sa.Column("return_date", sa.Date(), nullable=True),
        sa.Column("issued_by", sa.String(length=128), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["serial_number"], ["terminals.serial_number"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_issuances_serial_number", "issuances", ["serial_number"], unique=False)
    op.create_index("ix_issuances_mid", "issuances", ["mid"], unique=False)
    op.create_index("ix_issuances_serial_open", "issuances", ["serial_number", "return_date"], unique=False)

    op.create_table(
        "payment_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("receipt_ref", sa.String(length=128), nullable=False),
        sa.Column("receipt_key", sa.String(length=128), nullable=False),
        sa.Column("payment_date", sa.String(length=32), nullable=True),
        sa.Column("merchant_id", sa.String(length=64), nullable=False, server_default=""),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("payment_type", sa.String(length=32), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("covered_serials", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("receipt_key", name="uq_payment_records_receipt_key"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_payment_records_merchant_id", "payment_records", ["merchant_id"], unique=False)

    op.create_table(
        "settings",
        sa.Column("key", sa.String(length=128), nullable=False),
        sa.Column("value", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.PrimaryKeyConstraint("key"),
    )

    # Seed the runtime settings; the app fills in anything missing later.
    op.execute(
        """
        INSERT INTO settings (key, value, updated_at) VALUES
            ('procurement_import_locked', 'false', CURRENT_TIMESTAMP),
            ('expected_procurement_count', '600', CURRENT_TIMESTAMP),
            ('unit_price', '16825', CURRENT_TIMESTAMP)
        """
    )


def downgrade():
    op.drop_table("settings")
    op.drop_index("ix_payment_records_merchant_id", table_name="payment_records")
    op.drop_table("payment_records")
    op.drop_index("ix_issuances_serial_open", table_name="issuances")
    op.drop_index("ix_issuances_mid", table_name="issuances")
    op.drop_index("ix_issuances_serial_number", table_name="issuances")
    op.drop_table("issuances")
    op.drop_index("ix_terminals_status", table_name="terminals")
    op.drop_table("terminals")
