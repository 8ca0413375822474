"""
Statistics and export lists for a count session.

Everything here is a read-only computation over a session and the catalog
index it was counted against; nothing is cached, callers recompute on demand.

Coverage is measured against the *in-scope* catalog: records owned by the
selected library whose collection status is active. Each in-scope barcode is
exactly one of

- valid: at least one surviving scan of it is clean
- warned: scanned, but every surviving scan carries a warning
- missing: never scanned (a write-off candidate)
"""
from __future__ import annotations

from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .catalog import CatalogIndex
from .models import CatalogRecord, ScanEvent, Session, WarningKind
from .reference import ReferenceTables


@dataclass(frozen=True)
class Coverage:
    valid: int
    warned: int
    missing: int
    total: int

    @property
    def scanned(self) -> int:
        return self.valid + self.warned

    @property
    def percent_scanned(self) -> float:
        if not self.total:
            return 0.0
        return 100.0 * self.scanned / self.total


@dataclass
class LocationStats:
    valid: int = 0
    warned: int = 0
    missing: int = 0

    @property
    def total(self) -> int:
        return self.valid + self.warned + self.missing


@dataclass
class Statistics:
    coverage: Coverage
    scan_count: int
    unique_barcodes: int
    throughput_per_minute: float | None
    warnings: dict[str, int] = field(default_factory=dict)
    material_types: dict[str, int] = field(default_factory=dict)
    locations: dict[str, LocationStats] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.coverage.valid,
            "warned": self.coverage.warned,
            "missing": self.coverage.missing,
            "in_scope": self.coverage.total,
            "percent_scanned": round(self.coverage.percent_scanned, 1),
            "scan_count": self.scan_count,
            "unique_barcodes": self.unique_barcodes,
            "throughput_per_minute": self.throughput_per_minute,
            "warnings": dict(self.warnings),
            "material_types": dict(self.material_types),
            "locations": {
                code: {"valid": s.valid, "warned": s.warned, "missing": s.missing}
                for code, s in self.locations.items()
            },
        }


def in_scope(record: CatalogRecord, library_code: str) -> bool:
    return record.is_active and record.owner_library_code == library_code


def in_scope_records(session: Session, index: CatalogIndex) -> dict[str, CatalogRecord]:
    """Barcode -> record for every in-scope catalog item."""
    return {
        barcode: record
        for barcode, record in index.items()
        if in_scope(record, session.selected_library_code)
    }


def events_by_barcode(session: Session) -> dict[str, list[ScanEvent]]:
    grouped: dict[str, list[ScanEvent]] = {}
    for event in session.scan_events:
        grouped.setdefault(event.normalized_barcode, []).append(event)
    return grouped


def _status_by_barcode(session: Session, index: CatalogIndex) -> dict[str, str]:
    """In-scope barcode -> "valid" / "warned" / "missing"."""
    grouped = events_by_barcode(session)
    status = {}
    for barcode in in_scope_records(session, index):
        events = grouped.get(barcode)
        if not events:
            status[barcode] = "missing"
        elif any(e.is_clean for e in events):
            status[barcode] = "valid"
        else:
            status[barcode] = "warned"
    return status


def coverage(session: Session, index: CatalogIndex) -> Coverage:
    counts = Counter(_status_by_barcode(session, index).values())
    return Coverage(
        valid=counts["valid"],
        warned=counts["warned"],
        missing=counts["missing"],
        total=sum(counts.values()),
    )


def warning_distribution(session: Session) -> dict[str, int]:
    """Warning kind -> number of events carrying it (kinds in declaration order)."""
    counts = Counter(w.kind for event in session.scan_events for w in event.warnings)
    return {kind.value: counts[kind] for kind in WarningKind if counts[kind]}


def material_type_distribution(session: Session, index: CatalogIndex) -> dict[str, int]:
    counts = Counter(record.material_type or "unknown" for record in in_scope_records(session, index).values())
    return dict(counts.most_common())


def location_breakdown(session: Session, index: CatalogIndex) -> dict[str, LocationStats]:
    records = in_scope_records(session, index)
    breakdown: dict[str, LocationStats] = {}
    for barcode, state in _status_by_barcode(session, index).items():
        stats = breakdown.setdefault(records[barcode].location_code or "", LocationStats())
        setattr(stats, state, getattr(stats, state) + 1)
    return dict(sorted(breakdown.items()))


def throughput(session: Session) -> float | None:
    """Scans per minute between the first and the last scan.

    Returns None when there is no elapsed time to divide by.
    """
    if not session.scan_events:
        return None
    timestamps = [e.timestamp for e in session.scan_events]
    elapsed = (max(timestamps) - min(timestamps)).total_seconds() / 60
    if elapsed <= 0:
        return None
    return len(session.scan_events) / elapsed


def format_throughput(value: float | None) -> str:
    if value is None:
        return "∞"
    return f"{value:.1f}/min"


def compute_statistics(session: Session, index: CatalogIndex) -> Statistics:
    return Statistics(
        coverage=coverage(session, index),
        scan_count=len(session.scan_events),
        unique_barcodes=len(session.seen_barcodes),
        throughput_per_minute=throughput(session),
        warnings=warning_distribution(session),
        material_types=material_type_distribution(session, index),
        locations=location_breakdown(session, index),
    )


# -- export lists -------------------------------------------------------------

EVENT_COLUMNS = ["barcode", "raw_input", "title", "location_code", "material_type", "warnings", "scanned_at"]


def _event_row(event: ScanEvent) -> dict[str, Any]:
    record = event.matched_record
    return {
        "barcode": event.normalized_barcode,
        "raw_input": event.raw_input,
        "title": record.title if record else "",
        "location_code": record.location_code if record else "",
        "material_type": record.material_type if record else "",
        "warnings": event.warnings_text(),
        "scanned_at": event.timestamp.isoformat(timespec="seconds"),
    }


def _events_with(session: Session, *kinds: WarningKind) -> list[ScanEvent]:
    return [e for e in session.scan_events if any(e.has_warning(kind) for kind in kinds)]


def clean_rows(session: Session, index: CatalogIndex, references: ReferenceTables) -> list[dict[str, Any]]:
    return [_event_row(e) for e in session.scan_events if e.is_clean]


def wrong_library_rows(session: Session, index: CatalogIndex, references: ReferenceTables) -> list[dict[str, Any]]:
    rows = []
    for event in _events_with(session, WarningKind.WRONG_LIBRARY):
        warning = next(w for w in event.warnings if w.kind is WarningKind.WRONG_LIBRARY)
        row = _event_row(event)
        row["library_code"] = warning.library_code or ""
        row["library_name"] = references.library_name(warning.library_code) or ""
        rows.append(row)
    return rows


def location_mismatch_rows(session: Session, index: CatalogIndex, references: ReferenceTables) -> list[dict[str, Any]]:
    return [_event_row(e) for e in _events_with(session, WarningKind.LOCATION_MISMATCH)]


def duplicate_rows(session: Session, index: CatalogIndex, references: ReferenceTables) -> list[dict[str, Any]]:
    rows = []
    for barcode, events in events_by_barcode(session).items():
        if len(events) < 2:
            continue
        record = next((e.matched_record for e in events if e.matched_record), None)
        rows.append({"barcode": barcode, "title": record.title if record else "", "count": len(events)})
    return sorted(rows, key=lambda row: (-row["count"], row["barcode"]))


def not_in_list_rows(session: Session, index: CatalogIndex, references: ReferenceTables) -> list[dict[str, Any]]:
    return [
        _event_row(e)
        for e in _events_with(session, WarningKind.NOT_FOUND, WarningKind.AUTO_COMPLETED_NOT_FOUND, WarningKind.INVALID_STRUCTURE)
    ]


def on_loan_rows(session: Session, index: CatalogIndex, references: ReferenceTables) -> list[dict[str, Any]]:
    rows = []
    for event in _events_with(session, WarningKind.ON_LOAN):
        row = _event_row(event)
        row["due_date"] = event.matched_record.due_date if event.matched_record else ""
        rows.append(row)
    return rows


def not_loanable_rows(session: Session, index: CatalogIndex, references: ReferenceTables) -> list[dict[str, Any]]:
    return [_event_row(e) for e in _events_with(session, WarningKind.NOT_LOANABLE)]


def not_in_collection_rows(session: Session, index: CatalogIndex, references: ReferenceTables) -> list[dict[str, Any]]:
    return [_event_row(e) for e in _events_with(session, WarningKind.NOT_IN_COLLECTION)]


def missing_barcodes(session: Session, index: CatalogIndex) -> list[str]:
    return sorted(barcode for barcode, state in _status_by_barcode(session, index).items() if state == "missing")


def missing_rows(session: Session, index: CatalogIndex, references: ReferenceTables) -> list[dict[str, Any]]:
    rows = []
    for barcode in missing_barcodes(session, index):
        record = index.lookup(barcode)
        rows.append({
            "barcode": barcode,
            "title": record.title,
            "location_code": record.location_code,
            "location_name": references.location_name(record.location_code) or "",
            "material_type": record.material_type,
        })
    return rows


def write_off_barcodes(session: Session, index: CatalogIndex, references: ReferenceTables | None = None) -> list[str]:
    """Missing in-scope barcodes as plain identifiers."""
    return missing_barcodes(session, index)


def all_results_rows(session: Session, index: CatalogIndex, references: ReferenceTables) -> list[dict[str, Any]]:
    rows = []
    for event in session.scan_events:
        row = _event_row(event)
        row["warnings"] = event.warnings_text() or "OK"
        rows.append(row)
    return rows


RowBuilder = Callable[[Session, CatalogIndex, ReferenceTables], list[dict[str, Any]]]


@dataclass(frozen=True)
class ReportSpec:
    title: str
    columns: list[str]
    build: RowBuilder


REPORTS: dict[str, ReportSpec] = {
    "clean": ReportSpec("Clean", EVENT_COLUMNS, clean_rows),
    "wrong-library": ReportSpec("Wrong library", EVENT_COLUMNS + ["library_code", "library_name"], wrong_library_rows),
    "location-mismatch": ReportSpec("Wrong location", EVENT_COLUMNS, location_mismatch_rows),
    "duplicates": ReportSpec("Duplicates", ["barcode", "title", "count"], duplicate_rows),
    "not-in-list": ReportSpec("Not in catalog", EVENT_COLUMNS, not_in_list_rows),
    "on-loan": ReportSpec("On loan", EVENT_COLUMNS + ["due_date"], on_loan_rows),
    "not-loanable": ReportSpec("Not loanable", EVENT_COLUMNS, not_loanable_rows),
    "not-in-collection": ReportSpec("Not in collection", EVENT_COLUMNS, not_in_collection_rows),
    "missing": ReportSpec(
        "Missing", ["barcode", "title", "location_code", "location_name", "material_type"], missing_rows
    ),
    "all": ReportSpec("All results", EVENT_COLUMNS, all_results_rows),
}


def build_report(name: str, session: Session, index: CatalogIndex, references: ReferenceTables) -> list[dict[str, Any]]:
    """Build the rows of a named report.

    Raises:
        KeyError: If the report name is unknown.
    """
    return REPORTS[name].build(session, index, references)
