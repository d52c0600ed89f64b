# Overview: Per-merchant obligations derived from the uploaded POS list and the payment ledger.

"""
Merchant Aggregator

Summaries are recomputed from the current rows and ledger on every read;
nothing here is cached or persisted.

RULES:
- Rows are grouped by normalized merchant id; rows without one are skipped.
- terminal_count counts distinct raw serials within the group.
- expected = terminal_count * unit price
- paid     = sum of ledger amounts whose normalized merchant id equals the group key
- outstanding = expected - paid
- status: outstanding <= 0 -> PAID, paid > 0 -> PARTIAL, else UNPAID

The output does not depend on row order: representative fields (name,
region, ...) take the most frequent value with ties broken alphabetically,
and summaries with equal terminal counts are ordered by merchant id.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol

from .identifier_service import normalize_merchant_id
from .ingestion_service import TerminalAssignmentRow
from .money import cents_to_units


PAYMENT_STATUS_UNPAID = "UNPAID"
PAYMENT_STATUS_PARTIAL = "PARTIAL"
PAYMENT_STATUS_PAID = "PAID"


class LedgerEntry(Protocol):
    merchant_id: str
    amount_cents: int


@dataclass
class MerchantSummary:
    mid: str
    merchant_name: str
    terminal_count: int
    signatures: list[str]
    tids: list[str]
    expected_cents: int
    paid_cents: int
    outstanding_cents: int
    status: str
    region: Any = None
    dzongkhag: Any = None
    contact: Any = None

    def to_dict(self) -> dict:
        return {
            "mid": self.mid,
            "merchant_name": self.merchant_name,
            "terminal_count": self.terminal_count,
            "signatures": list(self.signatures),
            "tids": list(self.tids),
            "region": self.region,
            "dzongkhag": self.dzongkhag,
            "contact": self.contact,
            "expected_cents": self.expected_cents,
            "paid_cents": self.paid_cents,
            "outstanding_cents": self.outstanding_cents,
            "expected_amount": str(cents_to_units(self.expected_cents)),
            "paid_amount": str(cents_to_units(self.paid_cents)),
            "outstanding_amount": str(cents_to_units(self.outstanding_cents)),
            "status": self.status,
        }


@dataclass
class _Group:
    signatures: set[str] = field(default_factory=set)
    tids: set[str] = field(default_factory=set)
    names: Counter = field(default_factory=Counter)
    regions: Counter = field(default_factory=Counter)
    dzongkhags: Counter = field(default_factory=Counter)
    contacts: Counter = field(default_factory=Counter)


def payment_status(paid_cents: int, outstanding_cents: int) -> str:
    if outstanding_cents <= 0:
        return PAYMENT_STATUS_PAID
    if paid_cents > 0:
        return PAYMENT_STATUS_PARTIAL
    return PAYMENT_STATUS_UNPAID


def _representative(counter: Counter):
    """Most common value; ties go to the smallest string form."""
    if not counter:
        return None
    return min(counter.items(), key=lambda kv: (-kv[1], str(kv[0])))[0]


def _tally(counter: Counter, value: Any) -> None:
    if value not in (None, ""):
        counter[value] += 1


def paid_by_merchant(payments: Iterable[LedgerEntry]) -> dict[str, int]:
    totals: dict[str, int] = defaultdict(int)
    for payment in payments:
        mid = normalize_merchant_id(payment.merchant_id)
        if mid:
            totals[mid] += int(payment.amount_cents or 0)
    return totals


def summarize_merchants(
    rows: Iterable[TerminalAssignmentRow],
    payments: Iterable[LedgerEntry],
    unit_price_cents: int,
) -> list[MerchantSummary]:
    groups: dict[str, _Group] = defaultdict(_Group)

    for row in rows:
        mid = normalize_merchant_id(row.merchant_id)
        if not mid:
            continue
        group = groups[mid]
        group.signatures.add(row.serial)
        group.tids.add(row.terminal_id)
        _tally(group.names, row.merchant_name)
        _tally(group.regions, row.region)
        _tally(group.dzongkhags, row.dzongkhag)
        _tally(group.contacts, row.contact)

    paid = paid_by_merchant(payments)

    summaries = []
    for mid, group in groups.items():
        terminal_count = len(group.signatures)
        expected = terminal_count * unit_price_cents
        paid_cents = paid.get(mid, 0)
        outstanding = expected - paid_cents
        summaries.append(
            MerchantSummary(
                mid=mid,
                merchant_name=_representative(group.names) or "",
                terminal_count=terminal_count,
                signatures=sorted(group.signatures),
                tids=sorted(group.tids),
                expected_cents=expected,
                paid_cents=paid_cents,
                outstanding_cents=outstanding,
                status=payment_status(paid_cents, outstanding),
                region=_representative(group.regions),
                dzongkhag=_representative(group.dzongkhags),
                contact=_representative(group.contacts),
            )
        )

    summaries.sort(key=lambda s: (-s.terminal_count, s.mid))
    return summaries


def report_totals(summaries: Iterable[MerchantSummary]) -> dict:
    """Dashboard figures over a set of merchant summaries."""
    summaries = list(summaries)
    by_status = Counter(s.status for s in summaries)
    expected = sum(s.expected_cents for s in summaries)
    paid = sum(s.paid_cents for s in summaries)
    outstanding = sum(s.outstanding_cents for s in summaries)
    return {
        "terminals": sum(s.terminal_count for s in summaries),
        "merchants": len(summaries),
        "expected_cents": expected,
        "paid_cents": paid,
        "outstanding_cents": outstanding,
        "expected_amount": str(cents_to_units(expected)),
        "outstanding_amount": str(cents_to_units(outstanding)),
        "status_counts": {
            PAYMENT_STATUS_PAID: by_status[PAYMENT_STATUS_PAID],
            PAYMENT_STATUS_PARTIAL: by_status[PAYMENT_STATUS_PARTIAL],
            PAYMENT_STATUS_UNPAID: by_status[PAYMENT_STATUS_UNPAID],
        },
    }


def search_rows(rows: Iterable[TerminalAssignmentRow], query: str) -> list[TerminalAssignmentRow]:
    """Case-insensitive substring match on serial, mid, merchant name and tid."""
    q = (query or "").strip().lower()
    if not q:
        return []
    return [
        r for r in rows
        if q in r.serial.lower()
        or q in r.merchant_id.lower()
        or q in r.merchant_name.lower()
        or q in r.terminal_id.lower()
    ]
