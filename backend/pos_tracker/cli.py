# Overview: Flask CLI command groups for stock and payment maintenance.

# backend/pos_tracker/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Stock:
# - python -m flask stock import serials.xlsx --batch "Batch 1" --date 2026-02-01
#   Add procured serials (txt: one per line; csv/xlsx/json: the serial column).
# - python -m flask stock stats
#   Show terminal counts by status and the import lock.
# - python -m flask stock reset --yes
#   Delete all terminals and issuances and unlock the import.
#
# Payments:
# - python -m flask payments sync
#   Fetch the ledger sheet and merge it into the local ledger.
# - python -m flask payments clear --yes
#   Delete every payment record.

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import ingestion_service, payment_service, settings_service, stock_service
from .services.ledger_feed_service import LedgerFeedError
from .services.stock_service import ImportLockedError
from .time_utils import parse_iso_date
from .validation import ValidationError


def _read_serials(path: str) -> list:
    if path.lower().endswith(".txt"):
        with open(path, encoding="utf-8-sig") as fh:
            return [line.strip() for line in fh if line.strip()]

    with open(path, "rb") as fh:
        try:
            rows = ingestion_service.read_upload(fh, path)
        except ValidationError as e:
            raise click.ClickException(str(e))
    if not rows:
        return []

    columns = list(rows[0].keys())
    patterns = ingestion_service.COLUMN_PATTERNS["signature"]
    column = next(
        (c for c in columns if any(p.lower() in c.lower() for p in patterns)),
        columns[0],
    )
    return [row.get(column) for row in rows if row.get(column) not in (None, "")]


@click.group('stock')
def stock_group():
    """Terminal stock commands."""


@stock_group.command('import')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--batch', 'batch_name', default=None, help='Procurement batch name')
@click.option('--date', 'procured', default=None, help='Procurement date (YYYY-MM-DD)')
@with_appcontext
def import_stock(path, batch_name, procured):
    """Import procured serials from a file."""
    try:
        procured_date = parse_iso_date(procured)
    except ValueError:
        raise click.BadParameter("must be YYYY-MM-DD", param_hint="--date")

    serials = _read_serials(path)
    click.echo(f"START Importing {len(serials)} serials from {path}...")

    try:
        result = stock_service.import_terminals(serials, batch_name=batch_name, procured_date=procured_date)
    except ImportLockedError as e:
        raise click.ClickException(str(e))

    click.echo(
        f"PASS Imported {result['imported']}, skipped {result['skipped']}, "
        f"errors {result['errors']}, total in stock {result['total']}"
    )
    if result["locked"]:
        click.echo("WARN  Expected procurement count reached; import is now locked.")


@stock_group.command('stats')
@with_appcontext
def stock_stats():
    """Show terminal counts by status."""
    stats = stock_service.get_stock_stats()
    locked = settings_service.is_import_locked()
    expected = settings_service.expected_procurement_count()
    db.session.commit()

    click.echo(f"Total: {stats['total']} / {expected} expected (import {'locked' if locked else 'open'})")
    for key in ("in_stock", "issued", "returned", "faulty", "scrapped"):
        click.echo(f"  {key:<10} {stats[key]}")


@stock_group.command('reset')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_stock(yes):
    """
    DANGER: Delete every terminal and issuance.

    The procurement import is unlocked afterwards.
    """
    if not yes:
        click.confirm("WARN This will DELETE all stock data. Are you sure?", abort=True)

    stock_service.reset_stock()
    click.echo("PASS Stock reset complete.")


@click.group('payments')
def payments_group():
    """Payment ledger commands."""


@payments_group.command('sync')
@with_appcontext
def sync_payments():
    """Fetch the ledger sheet and merge it."""
    try:
        result = payment_service.sync_from_feed()
    except LedgerFeedError as e:
        raise click.ClickException(str(e))

    click.echo(
        f"PASS Added {result.added}, updated {result.updated}, discarded {result.discarded}"
    )


@payments_group.command('clear')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def clear_payments(yes):
    """DANGER: Delete every payment record."""
    if not yes:
        click.confirm("WARN This will DELETE all payment records. Are you sure?", abort=True)

    deleted = payment_service.clear_payments()
    click.echo(f"PASS Deleted {deleted} payment records.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(stock_group)
    app.cli.add_command(payments_group)
