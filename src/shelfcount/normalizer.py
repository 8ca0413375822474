"""
Barcode normalization.

Library barcodes are 12 digits long and start with the owning library's
code plus 1000 (library "12" -> prefix "1012"). Scanners add noise and
surveyors type only the tail of a barcode, so raw input is canonicalized
before it is classified.
"""
from __future__ import annotations

import re
from typing import NamedTuple

BARCODE_LENGTH = 12
PREFIX_OFFSET = 1000

_NON_DIGIT = re.compile(r"[^0-9]")


class NormalizedBarcode(NamedTuple):
    normalized: str
    was_auto_completed: bool


def library_prefix(library_code: str | None) -> str:
    """Return the barcode prefix for a library code, or "" if the code is not numeric."""
    if library_code is None:
        return ""
    code = str(library_code).strip()
    if not (code.isascii() and code.isdigit()):
        return ""
    return str(int(code) + PREFIX_OFFSET)


def strip_non_digits(raw: str) -> str:
    return _NON_DIGIT.sub("", raw or "")


def normalize(raw: str, selected_library_code: str) -> NormalizedBarcode:
    """Canonicalize raw scanner/keyboard input.

    - 13 or more digits are cut to the first 12.
    - 1 to 11 digits are treated as the tail of a barcode of the selected
      library: the library prefix is prepended and the digits are zero
      padded to fill the 12 positions.
    - Exactly 12 digits, or no digits at all, are returned unchanged.

    An empty ``normalized`` value means the input must be ignored.
    """
    digits = strip_non_digits(raw)
    length = len(digits)

    if length > BARCODE_LENGTH:
        return NormalizedBarcode(digits[:BARCODE_LENGTH], False)

    if 0 < length < BARCODE_LENGTH:
        prefix = library_prefix(selected_library_code)
        return NormalizedBarcode(prefix + digits.zfill(BARCODE_LENGTH - len(prefix)), True)

    return NormalizedBarcode(digits, False)


def is_structurally_foreign(barcode: str, selected_library_code: str) -> bool:
    """True when a full-length barcode does not carry the selected library's prefix."""
    if len(barcode) != BARCODE_LENGTH or not (barcode.isascii() and barcode.isdigit()):
        return False
    return not barcode.startswith(library_prefix(selected_library_code))
