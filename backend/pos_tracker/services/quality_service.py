# Overview: Integrity checks over the raw (unmerged) POS list rows.

"""
Data Quality Analyzer

Each check is independent; one row can feed several issues. Offender lists
are sorted so the report is the same for any ordering of the input rows.

CHECKS:
- missing_signature               (high)   serial is blank
- missing_mid                     (high)   merchant id is blank
- duplicate_signature_global      (high)   raw serial on more than one row
- duplicate_signature_conflict    (high)   serial under more than one merchant id
- duplicate_mid_inconsistent_name (medium) merchant id with more than one name

The duplicate checks key on the raw serial, the same key the aggregator
uses to count terminals. A serial repeated under one merchant (several
TIDs) is a global duplicate but not a conflict.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import Any, Iterable

from .identifier_service import normalize_merchant_id, normalize_serial
from .ingestion_service import TerminalAssignmentRow


SEVERITY_HIGH = "high"
SEVERITY_MEDIUM = "medium"

MISSING_SIGNATURE = "missing_signature"
MISSING_MID = "missing_mid"
DUPLICATE_SIGNATURE_GLOBAL = "duplicate_signature_global"
DUPLICATE_SIGNATURE_CONFLICT = "duplicate_signature_conflict"
DUPLICATE_MID_INCONSISTENT_NAME = "duplicate_mid_inconsistent_name"


@dataclass
class DataQualityIssue:
    kind: str
    severity: str
    description: str
    affected_rows: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "type": self.kind,
            "severity": self.severity,
            "description": self.description,
            "affected_rows": self.affected_rows,
        }


def _row_sort_key(row: TerminalAssignmentRow):
    return (row.serial, row.merchant_id, row.terminal_id, row.merchant_name)


def _missing_signature(rows: list[TerminalAssignmentRow]) -> DataQualityIssue | None:
    missing = sorted((r for r in rows if not normalize_serial(r.serial)), key=_row_sort_key)
    if not missing:
        return None
    return DataQualityIssue(
        kind=MISSING_SIGNATURE,
        severity=SEVERITY_HIGH,
        description=f"{len(missing)} rows are missing a Signature (Serial Number).",
        affected_rows=[r.to_dict() for r in missing],
    )


def _missing_mid(rows: list[TerminalAssignmentRow]) -> DataQualityIssue | None:
    missing = sorted((r for r in rows if not normalize_merchant_id(r.merchant_id)), key=_row_sort_key)
    if not missing:
        return None
    return DataQualityIssue(
        kind=MISSING_MID,
        severity=SEVERITY_HIGH,
        description=f"{len(missing)} rows are missing a Merchant ID (MID).",
        affected_rows=[r.to_dict() for r in missing],
    )


def _duplicate_signatures(rows: list[TerminalAssignmentRow]) -> DataQualityIssue | None:
    counts = Counter(r.serial for r in rows if normalize_serial(r.serial))
    offenders = sorted((sig, n) for sig, n in counts.items() if n > 1)
    if not offenders:
        return None
    return DataQualityIssue(
        kind=DUPLICATE_SIGNATURE_GLOBAL,
        severity=SEVERITY_HIGH,
        description=f"{len(offenders)} Serial Numbers appear multiple times in the list.",
        affected_rows=[{"serial": sig, "count": n} for sig, n in offenders],
    )


def _signature_conflicts(rows: list[TerminalAssignmentRow]) -> DataQualityIssue | None:
    mids_by_serial: dict[str, set[str]] = defaultdict(set)
    for r in rows:
        mid = normalize_merchant_id(r.merchant_id)
        if normalize_serial(r.serial) and mid:
            mids_by_serial[r.serial].add(mid)

    conflicts = sorted((sig, mids) for sig, mids in mids_by_serial.items() if len(mids) > 1)
    if not conflicts:
        return None
    return DataQualityIssue(
        kind=DUPLICATE_SIGNATURE_CONFLICT,
        severity=SEVERITY_HIGH,
        description=f"{len(conflicts)} Serial Numbers are assigned to multiple different MIDs (Critical Conflict).",
        affected_rows=[{"serial": sig, "mids": sorted(mids)} for sig, mids in conflicts],
    )


def _inconsistent_names(rows: list[TerminalAssignmentRow]) -> DataQualityIssue | None:
    names_by_mid: dict[str, set[str]] = defaultdict(set)
    for r in rows:
        mid = normalize_merchant_id(r.merchant_id)
        if mid and r.merchant_name:
            names_by_mid[mid].add(r.merchant_name)

    inconsistent = sorted((mid, names) for mid, names in names_by_mid.items() if len(names) > 1)
    if not inconsistent:
        return None
    return DataQualityIssue(
        kind=DUPLICATE_MID_INCONSISTENT_NAME,
        severity=SEVERITY_MEDIUM,
        description=f"{len(inconsistent)} MIDs have inconsistent Merchant Names.",
        affected_rows=[{"mid": mid, "names": sorted(names)} for mid, names in inconsistent],
    )


CHECKS = (
    _missing_signature,
    _missing_mid,
    _duplicate_signatures,
    _signature_conflicts,
    _inconsistent_names,
)


def analyze_rows(rows: Iterable[TerminalAssignmentRow]) -> list[DataQualityIssue]:
    snapshot = list(rows)
    issues = []
    for check in CHECKS:
        issue = check(snapshot)
        if issue is not None:
            issues.append(issue)
    return issues
