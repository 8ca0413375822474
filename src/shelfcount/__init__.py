"""
shelfcount - physical inventory count of a library's holdings

Features:
- Normalize scanned or typed barcodes against the selected library
- Classify each scan against an imported catalog extract
- Keep a per-session scan ledger with duplicate detection
- Coverage statistics and categorized export lists (missing, write-off, ...)
"""

from ._version import __version__
from .catalog import CatalogIndex, load_catalog
from .classifier import classify, select_signal
from .ledger import SessionLedger
from .models import (
    CatalogImportError,
    CatalogRecord,
    PersistenceError,
    ScanEvent,
    ScanWarning,
    Session,
    ShelfcountError,
    WarningKind,
)
from .normalizer import normalize
from .reports import compute_statistics

__all__ = [
    "__version__",
    "CatalogIndex",
    "CatalogImportError",
    "CatalogRecord",
    "PersistenceError",
    "ScanEvent",
    "ScanWarning",
    "Session",
    "SessionLedger",
    "ShelfcountError",
    "WarningKind",
    "classify",
    "compute_statistics",
    "load_catalog",
    "normalize",
    "select_signal",
]
