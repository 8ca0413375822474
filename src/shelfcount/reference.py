"""
Library and location reference tables (code -> display name).

Base entries come from configuration; surveyors can add their own entries
during a session, and those user-added entries travel with the saved session.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from .normalizer import library_prefix


@dataclass
class ReferenceTables:
    libraries: dict[str, str] = field(default_factory=dict)
    locations: dict[str, str] = field(default_factory=dict)
    user_libraries: dict[str, str] = field(default_factory=dict)
    user_locations: dict[str, str] = field(default_factory=dict)

    def all_libraries(self) -> dict[str, str]:
        return {**self.libraries, **self.user_libraries}

    def all_locations(self) -> dict[str, str]:
        return {**self.locations, **self.user_locations}

    def add_library(self, code: str, name: str) -> None:
        self.user_libraries[str(code).strip()] = name.strip()

    def add_location(self, code: str, name: str) -> None:
        self.user_locations[str(code).strip()] = name.strip()

    def library_name(self, code: str | None) -> str | None:
        """Return the display name for a library code, or None when unknown."""
        if code is None:
            return None
        return self.all_libraries().get(code)

    def location_name(self, code: str | None) -> str | None:
        if code is None:
            return None
        return self.all_locations().get(code)

    def describe_library(self, code: str | None) -> str:
        """Name and code for messages; falls back to the bare code."""
        name = self.library_name(code)
        if name:
            return f"{name} ({code})"
        return code or "unknown library"

    def library_for_barcode(self, barcode: str) -> str | None:
        """Find the known library whose barcode prefix starts ``barcode``.

        The longest matching prefix wins; libraries whose code is not
        numeric have no prefix and are never matched.
        """
        best_code = None
        best_len = 0
        for code in self.all_libraries():
            prefix = library_prefix(code)
            if prefix and barcode.startswith(prefix) and len(prefix) > best_len:
                best_code = code
                best_len = len(prefix)
        return best_code
