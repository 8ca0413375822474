"""
Catalog index built from an imported catalog extract.

The extract is a table with one row per physical item. Only ``BARCODE`` is
required; every other column falls back to an empty value when missing.
Header names are matched case-insensitively, and the Turkish column names
used by the library system's own export are accepted as aliases.
"""
from __future__ import annotations

import logging
import zipfile
from collections.abc import Iterable, Iterator
from pathlib import Path

from openpyxl.utils.exceptions import InvalidFileException

from . import tabular
from .models import CatalogImportError, CatalogRecord, UnsupportedFormatError

logger = logging.getLogger(__name__)

BARCODE_COLUMN = "BARCODE"

# field name -> accepted headers (canonical first)
COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "barcode": ("BARCODE", "BARKOD"),
    "owner_library_code": ("LIBRARY_CODE", "KUTUPHANE_KODU"),
    "location_code": ("LOCATION_CODE", "YER_KODU"),
    "loan_eligibility_code": ("LOAN_ELIGIBILITY_CODE", "ODUNC_VERILEBILIRLIK_KODU"),
    "loan_eligibility_text": ("LOAN_ELIGIBILITY_TEXT", "ODUNC_VERILEBILIRLIK"),
    "collection_status_code": ("STATUS_CODE", "DURUM_KODU"),
    "notice_code": ("NOTICE_CODE", "UYARI_KODU"),
    "due_date": ("DUE_DATE", "IADE_TARIHI"),
    "title": ("TITLE", "ESER_ADI"),
    "material_type": ("MATERIAL_TYPE", "MATERYAL_TURU"),
}

OPTIONAL_FIELDS = ("notice_code", "due_date")


def _normalize_header(header: str) -> str:
    return header.strip().upper().replace(" ", "_")


def resolve_columns(headers: Iterable[str]) -> dict[str, str]:
    """Map record field names to the header actually present in the file.

    Raises:
        CatalogImportError: If no barcode column is present.
    """
    by_normalized = {_normalize_header(h): h for h in headers if h}
    mapping: dict[str, str] = {}
    for field_name, aliases in COLUMN_ALIASES.items():
        for alias in aliases:
            if alias in by_normalized:
                mapping[field_name] = by_normalized[alias]
                break

    if "barcode" not in mapping:
        raise CatalogImportError(f"Required column {BARCODE_COLUMN} not found in catalog extract")
    return mapping


def records_from_rows(rows: Iterable[dict[str, str]], headers: Iterable[str] | None = None) -> list[CatalogRecord]:
    """Convert header-keyed rows into catalog records.

    Rows with an empty barcode cell are skipped.

    Raises:
        CatalogImportError: If the barcode column is absent.
    """
    rows = list(rows)
    if headers is None:
        headers = list(rows[0].keys()) if rows else []
    mapping = resolve_columns(headers)

    records = []
    skipped = 0
    for row in rows:
        values: dict[str, str | None] = {}
        for field_name in COLUMN_ALIASES:
            header = mapping.get(field_name)
            value = str(row.get(header) or "").strip() if header else ""
            if field_name in OPTIONAL_FIELDS:
                values[field_name] = value or None
            else:
                values[field_name] = value
        if not values["barcode"]:
            skipped += 1
            continue
        if not values["collection_status_code"] and "collection_status_code" not in mapping:
            # No status column at all: treat every item as active
            values["collection_status_code"] = "0"
        records.append(CatalogRecord(**values))

    if skipped:
        logger.warning("Skipped %d catalog rows without a barcode", skipped)
    return records


class CatalogIndex:
    """Immutable barcode -> record lookup built from one catalog import."""

    def __init__(self, records: dict[str, CatalogRecord]):
        self._records = dict(records)
        self._by_library: dict[str, list[CatalogRecord]] = {}
        for record in self._records.values():
            self._by_library.setdefault(record.owner_library_code, []).append(record)

    @classmethod
    def build(cls, records: Iterable[CatalogRecord]) -> CatalogIndex:
        """Build an index; a later record wins over an earlier one with the same barcode."""
        mapping: dict[str, CatalogRecord] = {}
        for record in records:
            mapping[record.barcode.strip()] = record
        return cls(mapping)

    @classmethod
    def empty(cls) -> CatalogIndex:
        return cls({})

    def lookup(self, barcode: str) -> CatalogRecord | None:
        return self._records.get(barcode)

    def records_for_library(self, code: str) -> list[CatalogRecord]:
        return list(self._by_library.get(code, []))

    def barcodes(self) -> list[str]:
        return list(self._records)

    def items(self) -> list[tuple[str, CatalogRecord]]:
        return list(self._records.items())

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, barcode: object) -> bool:
        return barcode in self._records

    def __iter__(self) -> Iterator[CatalogRecord]:
        return iter(self._records.values())

    def __repr__(self) -> str:
        return f"CatalogIndex({len(self._records)} records)"


def load_catalog(path: Path | str) -> CatalogIndex:
    """Read a CSV/XLSX catalog extract and build its index.

    Raises:
        CatalogImportError: If the file is missing, unreadable or lacks BARCODE.
    """
    path = Path(path)
    if not path.exists():
        raise CatalogImportError(f"Catalog file not found: {path}")

    try:
        headers, rows = tabular.read_table(path)
    except UnsupportedFormatError as e:
        raise CatalogImportError(str(e)) from e
    except (OSError, ValueError, zipfile.BadZipFile, InvalidFileException) as e:
        raise CatalogImportError(f"Could not read catalog {path}: {e}") from e

    index = CatalogIndex.build(records_from_rows(rows, headers))
    logger.info("Catalog loaded from %s: %d records", path, len(index))
    return index
