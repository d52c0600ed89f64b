# Overview: Canonical forms for merchant ids, serials and receipt references.

"""
Identifier Service

WHY: Merchant ids arrive from spreadsheets and the ledger feed with stray
whitespace, mixed case and leading zeros ("0091234", " 91234 "). Serials
arrive in mixed case. Every comparison in the tracker goes through these
functions so that equivalent values compare equal.

All functions are total: None or an empty value normalizes to "".
"""

from __future__ import annotations

from typing import Any


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def normalize_merchant_id(value: Any) -> str:
    """Trim, lower-case, strip leading zeros; an all-zero id keeps one '0'."""
    text = _as_text(value).strip().lower()
    stripped = text.lstrip("0")
    if not stripped and text:
        return "0"
    return stripped


def normalize_serial(value: Any) -> str:
    """Trim and upper-case."""
    return _as_text(value).strip().upper()


def receipt_key(value: Any) -> str:
    """Uniqueness key for a receipt reference: trimmed and lower-cased."""
    return _as_text(value).strip().lower()
