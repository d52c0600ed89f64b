from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any


_NON_NUMERIC = re.compile(r"[^0-9.]")


def to_cents(value: Any) -> int | None:
    """Currency units (int, float, Decimal or numeric string) -> integer cents."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError("amount must be numeric")
    if isinstance(value, int):
        return value * 100
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"amount must be numeric, got {value!r}")
    if not amount.is_finite():
        raise ValueError(f"amount must be numeric, got {value!r}")
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_amount_cents(value: Any) -> int | None:
    """
    Lenient parse for ledger amounts such as "BTN 16,825.00".

    Everything except digits and '.' is dropped before parsing; anything that
    still does not parse gives None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        try:
            return to_cents(value)
        except ValueError:
            return None
    text = _NON_NUMERIC.sub("", str(value))
    if not text:
        return None
    try:
        return to_cents(text)
    except ValueError:
        return None


def cents_to_units(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(Decimal("0.01"))
