# Overview: Excel exports of merchant summaries (outstanding, paid, full list).

from __future__ import annotations

import io
from typing import Iterable

from openpyxl import Workbook

from ..validation import ValidationError
from .merchant_service import PAYMENT_STATUS_PAID, MerchantSummary


EXPORT_OUTSTANDING = "outstanding"
EXPORT_PAID = "paid"
EXPORT_FULL = "full"

EXPORT_FILENAMES = {
    EXPORT_OUTSTANDING: "Outstanding_Payments_Report.xlsx",
    EXPORT_PAID: "Fully_Paid_Merchants_Report.xlsx",
    EXPORT_FULL: "Full_Merchant_Report.xlsx",
}

SHEET_TITLE = "Report"

# (header, MerchantSummary.to_dict() key)
COLUMNS = (
    ("MID", "mid"),
    ("Merchant Name", "merchant_name"),
    ("Terminal Count", "terminal_count"),
    ("Signatures", "signatures"),
    ("TIDs", "tids"),
    ("Region", "region"),
    ("Dzongkhag", "dzongkhag"),
    ("Contact", "contact"),
    ("Expected Amount", "expected_amount"),
    ("Paid Amount", "paid_amount"),
    ("Outstanding Amount", "outstanding_amount"),
    ("Status", "status"),
)


def select_summaries(summaries: Iterable[MerchantSummary], kind: str) -> list[MerchantSummary]:
    """
    outstanding: merchants that still owe something
    paid:        merchants with status PAID
    full:        everyone
    """
    if kind == EXPORT_OUTSTANDING:
        return [s for s in summaries if s.outstanding_cents > 0]
    if kind == EXPORT_PAID:
        return [s for s in summaries if s.status == PAYMENT_STATUS_PAID]
    if kind == EXPORT_FULL:
        return list(summaries)
    raise ValidationError(
        f"Invalid export kind '{kind}'. Must be one of: {', '.join(sorted(EXPORT_FILENAMES))}"
    )


def _cell(value):
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    return value


def build_workbook(summaries: Iterable[MerchantSummary]) -> io.BytesIO:
    wb = Workbook()
    sheet = wb.active
    sheet.title = SHEET_TITLE
    sheet.append([header for header, _ in COLUMNS])
    for summary in summaries:
        data = summary.to_dict()
        sheet.append([_cell(data[key]) for _, key in COLUMNS])

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    return buf
