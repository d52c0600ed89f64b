# Overview: Column mapping for uploaded POS lists; turns sheet rows into assignment rows.

"""
Ingestion Service

Uploaded POS lists come from hand-maintained spreadsheets whose headers
drift between releases ("MID", "Merchant ID", "Signature", "Serial No").
This module:
- parses CSV, JSON and Excel uploads into header-keyed dicts
- guesses which source column feeds each canonical field
- produces TerminalAssignmentRow objects with normalized merchant ids

Serials are kept as entered; duplicate checks downstream key on the raw value.
"""

from __future__ import annotations

import csv
import io
import json
from dataclasses import asdict, dataclass
from typing import Any, Iterable

from .identifier_service import normalize_merchant_id
from ..validation import ValidationError


POS_LIST_SHEET = "New POS LIST"

# Canonical field -> header substrings to look for (first hit wins).
COLUMN_PATTERNS: dict[str, tuple[str, ...]] = {
    "signature": ("Signature", "Serial", "DX8000"),
    "mid": ("MID", "Merchant ID"),
    "merchant_name": ("Merchant Name", "Name"),
    "tid": ("TID", "Terminal ID"),
    "region": ("Region", "Zone", "Area"),
    "dzongkhag": ("Dzongkha", "Dzongkhag", "District"),
    "contact": ("Contact", "Phone", "Mobile"),
}

OPTIONAL_FIELDS = {"region", "dzongkhag", "contact"}

ACCEPTED_FORMATS = "upload a .csv, .json or .xlsx file"


@dataclass(frozen=True)
class TerminalAssignmentRow:
    """One (terminal, merchant) observation from an uploaded list."""
    serial: str
    merchant_id: str
    merchant_name: str = ""
    terminal_id: str = ""
    region: str | None = None
    dzongkhag: str | None = None
    contact: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TerminalAssignmentRow":
        """Build from an already-mapped dict (API payloads use these keys)."""
        def text(*keys: str) -> str:
            for key in keys:
                value = data.get(key)
                if value not in (None, ""):
                    return str(value)
            return ""

        return cls(
            serial=text("serial", "signature"),
            merchant_id=normalize_merchant_id(text("merchant_id", "mid")),
            merchant_name=text("merchant_name", "merchantName"),
            terminal_id=text("terminal_id", "tid"),
            region=data.get("region"),
            dzongkhag=data.get("dzongkhag"),
            contact=data.get("contact"),
        )

    def to_dict(self) -> dict:
        return asdict(self)


def auto_map_columns(columns: list[str]) -> dict[str, str]:
    """
    Pick a source column for every canonical field.

    Matching is a case-insensitive substring test against COLUMN_PATTERNS.
    When nothing matches, fall back to the column at the field's position
    (optional fields fall back to "" when the sheet is too narrow).
    """
    mapping: dict[str, str] = {}
    for position, (field, patterns) in enumerate(COLUMN_PATTERNS.items()):
        match = next(
            (c for c in columns if any(p.lower() in c.lower() for p in patterns)),
            None,
        )
        if match is None:
            if position < len(columns):
                match = columns[position]
            elif field in OPTIONAL_FIELDS:
                match = ""
            else:
                raise ValidationError(f"Cannot map column for '{field}': sheet has {len(columns)} columns")
        mapping[field] = match
    return mapping


def parse_mapping_override(raw: str, columns: list[str]) -> dict[str, str]:
    """Client-chosen columns, as a JSON object of field -> column name."""
    try:
        override = json.loads(raw)
    except ValueError:
        raise ValidationError("mapping must be a JSON object")
    if not isinstance(override, dict):
        raise ValidationError("mapping must be a JSON object")

    for field, column in override.items():
        if field not in COLUMN_PATTERNS:
            raise ValidationError(f"Unknown mapping field: {field}")
        if column and column not in columns:
            raise ValidationError(f"Column not in upload: {column}")
    return {field: column or "" for field, column in override.items()}


def map_assignment_rows(
    raw_rows: Iterable[dict[str, Any]],
    mapping: dict[str, str],
) -> list[TerminalAssignmentRow]:
    def cell(row: dict[str, Any], field: str) -> Any:
        column = mapping.get(field)
        if not column:
            return None
        return row.get(column)

    def text(value: Any) -> str:
        return "" if value is None else str(value)

    rows = []
    for raw in raw_rows:
        rows.append(
            TerminalAssignmentRow(
                serial=text(cell(raw, "signature")),
                merchant_id=normalize_merchant_id(cell(raw, "mid")),
                merchant_name=text(cell(raw, "merchant_name")),
                terminal_id=text(cell(raw, "tid")),
                region=cell(raw, "region"),
                dzongkhag=cell(raw, "dzongkhag"),
                contact=cell(raw, "contact"),
            )
        )
    return rows


def read_upload(stream, filename: str, *, sheet_name: str | None = None) -> list[dict[str, Any]]:
    """
    Parse an uploaded file into a list of header-keyed dicts.

    Supports CSV, JSON and Excel (.xlsx). For workbooks, `sheet_name` is used
    when present, otherwise the active sheet.
    """
    ext = (filename or "").rsplit(".", 1)[-1].lower()

    if ext == "csv":
        text = stream.read()
        if isinstance(text, bytes):
            text = text.decode("utf-8-sig")
        # Cells past the header land under the None key; they have no column to map to.
        return [
            {k: v for k, v in row.items() if k is not None}
            for row in csv.DictReader(io.StringIO(text))
        ]

    if ext == "json":
        try:
            rows = json.load(stream)
        except ValueError:
            raise ValidationError("JSON upload is not valid JSON")
        if isinstance(rows, dict):
            rows = rows.get("rows", [])
        if not isinstance(rows, list):
            raise ValidationError("JSON upload must be a list of rows")
        if not all(isinstance(r, dict) for r in rows):
            raise ValidationError("JSON upload must be a list of row objects")
        return rows

    if ext in {"xlsx", "xlsm", "xltx", "xltm"}:
        from openpyxl import load_workbook
        wb = load_workbook(stream, read_only=True, data_only=True)
        matches = [n for n in wb.sheetnames if sheet_name and n.strip() == sheet_name]
        sheet = wb[matches[0]] if matches else wb.active
        data = list(sheet.values)
        if not data:
            return []
        headers = [str(h).strip() if h is not None else "" for h in data[0]]
        return [
            {headers[i]: row[i] for i in range(min(len(headers), len(row))) if headers[i]}
            for row in data[1:]
            if any(v is not None for v in row)
        ]

    if ext == "xls":
        raise ValidationError(
            "Unsupported file format: legacy .xls workbooks cannot be read, re-save the file as .xlsx"
        )
    raise ValidationError(f"Unsupported file format: {ACCEPTED_FORMATS}")
