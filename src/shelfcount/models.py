"""
Data model for a shelf inventory count.

Catalog records come from an imported catalog extract and never change
during a session. Scan events are created by the ledger, one per accepted
input, and are only ever removed, never edited.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ShelfcountError(Exception):
    """Base class for errors reported by shelfcount."""


class CatalogImportError(ShelfcountError):
    """Catalog extract could not be turned into an index."""


class UnsupportedFormatError(ShelfcountError):
    """Input or output file type is not supported."""


class PersistenceError(ShelfcountError):
    """Session could not be saved or loaded."""


ACTIVE_STATUS_CODE = "0"


@dataclass(frozen=True)
class CatalogRecord:
    """One row of the imported catalog extract."""
    barcode: str
    owner_library_code: str = ""
    location_code: str = ""
    loan_eligibility_code: str = ""
    loan_eligibility_text: str = ""
    collection_status_code: str = ACTIVE_STATUS_CODE
    notice_code: str | None = None
    due_date: str | None = None
    title: str = ""
    material_type: str = ""

    @property
    def is_active(self) -> bool:
        """True while the item is part of the collection (not withdrawn or transferred)."""
        return self.collection_status_code == ACTIVE_STATUS_CODE

    @property
    def is_on_loan(self) -> bool:
        return bool(self.due_date)

    def to_dict(self) -> dict[str, str | None]:
        return {
            "barcode": self.barcode,
            "owner_library_code": self.owner_library_code,
            "location_code": self.location_code,
            "loan_eligibility_code": self.loan_eligibility_code,
            "loan_eligibility_text": self.loan_eligibility_text,
            "collection_status_code": self.collection_status_code,
            "notice_code": self.notice_code,
            "due_date": self.due_date,
            "title": self.title,
            "material_type": self.material_type,
        }

    @classmethod
    def from_dict(cls, data: dict) -> CatalogRecord:
        return cls(
            barcode=data["barcode"],
            owner_library_code=data.get("owner_library_code", ""),
            location_code=data.get("location_code", ""),
            loan_eligibility_code=data.get("loan_eligibility_code", ""),
            loan_eligibility_text=data.get("loan_eligibility_text", ""),
            collection_status_code=data.get("collection_status_code", ACTIVE_STATUS_CODE),
            notice_code=data.get("notice_code"),
            due_date=data.get("due_date"),
            title=data.get("title", ""),
            material_type=data.get("material_type", ""),
        )


class WarningKind(Enum):
    """Classification outcomes attached to a scan event."""
    INVALID_STRUCTURE = "invalid_structure"
    LOCATION_MISMATCH = "location_mismatch"
    NOT_LOANABLE = "not_loanable"
    NOT_IN_COLLECTION = "not_in_collection"
    ON_LOAN = "on_loan"
    WRONG_LIBRARY = "wrong_library"
    NOT_FOUND = "not_found"
    AUTO_COMPLETED_NOT_FOUND = "auto_completed_not_found"
    DUPLICATE = "duplicate"

    @property
    def label(self) -> str:
        return WARNING_LABELS[self]


WARNING_LABELS = {
    WarningKind.INVALID_STRUCTURE: "Invalid barcode structure",
    WarningKind.LOCATION_MISMATCH: "Wrong location",
    WarningKind.NOT_LOANABLE: "Not loanable",
    WarningKind.NOT_IN_COLLECTION: "Not in collection",
    WarningKind.ON_LOAN: "On loan",
    WarningKind.WRONG_LIBRARY: "Wrong library",
    WarningKind.NOT_FOUND: "Not in catalog",
    WarningKind.AUTO_COMPLETED_NOT_FOUND: "Completed barcode not in catalog",
    WarningKind.DUPLICATE: "Duplicate scan",
}


@dataclass(frozen=True)
class ScanWarning:
    """A single classification outcome.

    ``library_code`` is only set for WRONG_LIBRARY and names the library
    the barcode actually belongs to (if one could be determined).
    """
    kind: WarningKind
    message: str
    library_code: str | None = None

    def to_dict(self) -> dict[str, str]:
        data = {"kind": self.kind.value, "message": self.message}
        if self.library_code is not None:
            data["library_code"] = self.library_code
        return data

    @classmethod
    def from_dict(cls, data: dict) -> ScanWarning:
        return cls(
            kind=WarningKind(data["kind"]),
            message=data.get("message", ""),
            library_code=data.get("library_code"),
        )


@dataclass(frozen=True)
class ScanEvent:
    """One surveyor action that produced a normalized barcode."""
    id: str
    raw_input: str
    normalized_barcode: str
    matched_record: CatalogRecord | None
    warnings: tuple[ScanWarning, ...]
    timestamp: datetime
    auto_completed: bool = False

    @property
    def is_clean(self) -> bool:
        return not self.warnings

    @property
    def warning_kinds(self) -> list[WarningKind]:
        return [w.kind for w in self.warnings]

    def has_warning(self, kind: WarningKind) -> bool:
        return any(w.kind is kind for w in self.warnings)

    def warnings_text(self) -> str:
        """Render warnings as one line for exports."""
        return "; ".join(w.message for w in self.warnings)


@dataclass
class Session:
    """One inventory run scoped to a library and optionally a location.

    ``scan_events`` is kept newest first. ``seen_barcodes`` holds every
    normalized barcode that still has at least one event in ``scan_events``.
    """
    name: str
    selected_library_code: str
    selected_location_code: str | None = None
    scan_events: list[ScanEvent] = field(default_factory=list)
    seen_barcodes: set[str] = field(default_factory=set)
    updated_at: datetime | None = None
