"""
Scan classification.

Given a normalized barcode and the session context, decide which warnings
apply. The order of the checks is fixed:

1. duplicate (barcode already seen this session) - nothing else runs
2. structure (12 digits with another library's prefix) - no catalog lookup
3. catalog lookup, then every applicable record warning in this order:
   wrong library, wrong location, not loanable, not in collection, on loan
4. not found / completed-but-not-found when the lookup misses
"""
from __future__ import annotations

from collections.abc import Collection, Set
from dataclasses import dataclass
from typing import NamedTuple

from .catalog import CatalogIndex
from .models import CatalogRecord, ScanWarning, WarningKind
from .normalizer import is_structurally_foreign
from .ports import Signal
from .reference import ReferenceTables

DEFAULT_LOANABLE_CODES = frozenset({"0"})


@dataclass(frozen=True)
class ClassificationContext:
    normalized_barcode: str
    raw_input: str
    was_auto_completed: bool
    selected_library_code: str
    selected_location_code: str | None
    index: CatalogIndex
    references: ReferenceTables
    seen_barcodes: Set[str]
    loanable_codes: Collection[str] = DEFAULT_LOANABLE_CODES
    previous_record: CatalogRecord | None = None


class Classification(NamedTuple):
    warnings: tuple[ScanWarning, ...]
    matched_record: CatalogRecord | None

    @property
    def is_clean(self) -> bool:
        return not self.warnings


def duplicate_warning(barcode: str) -> ScanWarning:
    return ScanWarning(WarningKind.DUPLICATE, f"{barcode} was already scanned in this session")


def on_loan_warning(due_date: str | None) -> ScanWarning:
    if due_date:
        return ScanWarning(WarningKind.ON_LOAN, f"On loan, due {due_date}")
    return ScanWarning(WarningKind.ON_LOAN, "On loan")


def _wrong_library(code: str | None, references: ReferenceTables) -> ScanWarning:
    return ScanWarning(
        WarningKind.WRONG_LIBRARY,
        f"Belongs to {references.describe_library(code)}",
        library_code=code,
    )


def _record_warnings(record: CatalogRecord, ctx: ClassificationContext) -> list[ScanWarning]:
    warnings = []

    if record.owner_library_code != ctx.selected_library_code:
        warnings.append(_wrong_library(record.owner_library_code, ctx.references))

    if ctx.selected_location_code and record.location_code != ctx.selected_location_code:
        location = ctx.references.location_name(record.location_code) or record.location_code or "no location"
        warnings.append(ScanWarning(WarningKind.LOCATION_MISMATCH, f"Shelved at {location}"))

    if record.loan_eligibility_code not in ctx.loanable_codes:
        reason = record.loan_eligibility_text or f"code {record.loan_eligibility_code or '-'}"
        warnings.append(ScanWarning(WarningKind.NOT_LOANABLE, f"Not loanable: {reason}"))

    if not record.is_active:
        warnings.append(ScanWarning(
            WarningKind.NOT_IN_COLLECTION,
            f"Withdrawn or transferred (status {record.collection_status_code})",
        ))

    if record.is_on_loan:
        warnings.append(on_loan_warning(record.due_date))

    return warnings


def classify(ctx: ClassificationContext) -> Classification:
    """Classify one normalized barcode."""
    barcode = ctx.normalized_barcode

    if barcode in ctx.seen_barcodes:
        return Classification((duplicate_warning(barcode),), ctx.previous_record)

    if is_structurally_foreign(barcode, ctx.selected_library_code):
        owner = ctx.references.library_for_barcode(barcode)
        if owner is not None:
            return Classification((_wrong_library(owner, ctx.references),), None)
        return Classification(
            (ScanWarning(WarningKind.INVALID_STRUCTURE, f"{barcode} does not match any known library prefix"),),
            None,
        )

    record = ctx.index.lookup(barcode)
    if record is None:
        if ctx.was_auto_completed:
            warning = ScanWarning(
                WarningKind.AUTO_COMPLETED_NOT_FOUND,
                f"Completed to {barcode} from {ctx.raw_input.strip()!r}, not in catalog",
            )
        else:
            warning = ScanWarning(WarningKind.NOT_FOUND, f"{barcode} is not in the catalog")
        return Classification((warning,), None)

    return Classification(tuple(_record_warnings(record, ctx)), record)


def select_signal(warnings: Collection[ScanWarning]) -> Signal:
    """Pick the single signal to request for a classified scan."""
    if not warnings:
        return Signal.SUCCESS
    if len(warnings) == 1:
        (warning,) = warnings
        return Signal.for_warning(warning.kind)
    return Signal.MULTIPLE
