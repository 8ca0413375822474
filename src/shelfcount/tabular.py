"""
Reading and writing tabular files.

Catalog extracts and bulk barcode lists arrive as CSV, XLSX or plain text.
Reports leave as CSV, XLSX or a plain newline-delimited barcode list.
"""
from __future__ import annotations

import csv
import logging
import re
from collections.abc import Iterable, Sequence
from datetime import date, datetime
from pathlib import Path
from typing import Any

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from .models import UnsupportedFormatError

logger = logging.getLogger(__name__)

TABLE_SUFFIXES = (".csv", ".xlsx", ".xlsm")
TEXT_SUFFIXES = (".txt", ".lst", "")


def cell_to_str(value: Any) -> str:
    """Render a spreadsheet cell as text.

    Whole-number floats (Excel stores every number as one) lose the ".0",
    dates become ISO strings.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        if value.time() == datetime.min.time():
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()


def _read_csv_rows(path: Path) -> list[list[str]]:
    # utf-8-sig swallows the BOM Excel writes
    with open(path, encoding="utf-8-sig", newline="") as f:
        sample = f.read(4096)
        f.seek(0)
        try:
            dialect = csv.Sniffer().sniff(sample, delimiters=",;\t")
        except csv.Error:
            dialect = csv.excel
        return [[cell.strip() for cell in row] for row in csv.reader(f, dialect)]


def _read_xlsx_rows(path: Path) -> list[list[str]]:
    wb = load_workbook(path, read_only=True, data_only=True)
    try:
        sheet = wb.worksheets[0]
        return [[cell_to_str(cell) for cell in row] for row in sheet.iter_rows(values_only=True)]
    finally:
        wb.close()


def read_rows(path: Path | str) -> list[list[str]]:
    """Read every row of the first sheet of a CSV or XLSX file as strings."""
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".csv":
        return _read_csv_rows(path)
    if suffix in (".xlsx", ".xlsm"):
        return _read_xlsx_rows(path)
    raise UnsupportedFormatError(f"Unsupported table format: {path.name}")


def read_table(path: Path | str) -> tuple[list[str], list[dict[str, str]]]:
    """Read a CSV/XLSX file with a header row.

    Returns:
        Tuple of (headers, rows) where each row maps header -> cell text.
        Fully empty rows are dropped.
    """
    rows = read_rows(path)
    if not rows:
        return [], []

    headers = [h.strip() for h in rows[0]]
    records = []
    for row in rows[1:]:
        if not any(cell for cell in row):
            continue
        records.append({header: (row[i] if i < len(row) else "") for i, header in enumerate(headers) if header})
    return headers, records


def read_barcode_list(path: Path | str) -> list[str]:
    """Read raw barcodes from a text file (one per line) or the first column of a table.

    A header row is skipped when its first cell contains no digits.
    """
    path = Path(path)
    suffix = path.suffix.lower()

    if suffix in TABLE_SUFFIXES:
        rows = read_rows(path)
        values = [row[0] if row else "" for row in rows]
        if values and not re.search(r"\d", values[0]):
            values = values[1:]
    elif suffix in TEXT_SUFFIXES:
        values = path.read_text(encoding="utf-8-sig").splitlines()
    else:
        raise UnsupportedFormatError(f"Unsupported barcode list format: {path.name}")

    result = [value.strip() for value in values if value.strip()]
    logger.info("Read %d barcodes from %s", len(result), path)
    return result


def write_table(path: Path | str, columns: Sequence[str], rows: Iterable[dict[str, Any]], title: str = "Report") -> int:
    """Write rows to CSV or XLSX depending on the file suffix.

    Returns:
        Number of data rows written.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    rows = list(rows)

    if suffix == ".csv":
        with open(path, "w", encoding="utf-8-sig", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=list(columns), extrasaction="ignore")
            writer.writeheader()
            for row in rows:
                writer.writerow({col: _plain(row.get(col)) for col in columns})
    elif suffix == ".xlsx":
        wb = Workbook()
        ws = wb.active
        ws.title = title[:31]
        ws.append(list(columns))
        for cell in ws[1]:
            cell.font = Font(bold=True)
        for row in rows:
            ws.append([_plain(row.get(col)) for col in columns])
        for col_idx, col in enumerate(columns, 1):
            width = max([len(str(col))] + [len(str(_plain(row.get(col)))) for row in rows])
            ws.column_dimensions[get_column_letter(col_idx)].width = min(max(width + 2, 10), 60)
        wb.save(path)
    else:
        raise UnsupportedFormatError(f"Unsupported report format: {path.name}")

    return len(rows)


def write_barcode_list(path: Path | str, barcodes: Iterable[str]) -> int:
    """Write a plain newline-delimited barcode list."""
    barcodes = list(barcodes)
    with open(path, "w", encoding="utf-8") as f:
        if barcodes:
            f.write("\n".join(barcodes) + "\n")
    return len(barcodes)


def _plain(value: Any) -> Any:
    if value is None:
        return ""
    return value
