"""
JSON persistence for count sessions.

A session file holds the session name, selected library/location, the scan
events newest first (warnings as kind + message), the last update time and
the reference entries the surveyor added by hand.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any

from .models import CatalogRecord, PersistenceError, ScanEvent, ScanWarning, Session
from .reference import ReferenceTables

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


def event_to_dict(event: ScanEvent) -> dict[str, Any]:
    return {
        "id": event.id,
        "raw": event.raw_input,
        "barcode": event.normalized_barcode,
        "record": event.matched_record.to_dict() if event.matched_record else None,
        "warnings": [w.to_dict() for w in event.warnings],
        "timestamp": event.timestamp.isoformat(),
        "auto_completed": event.auto_completed,
    }


def event_from_dict(data: dict[str, Any]) -> ScanEvent:
    record = data.get("record")
    return ScanEvent(
        id=data["id"],
        raw_input=data.get("raw", ""),
        normalized_barcode=data["barcode"],
        matched_record=CatalogRecord.from_dict(record) if record else None,
        warnings=tuple(ScanWarning.from_dict(w) for w in data.get("warnings", [])),
        timestamp=datetime.fromisoformat(data["timestamp"]),
        auto_completed=data.get("auto_completed", False),
    )


def session_to_dict(session: Session, references: ReferenceTables | None = None) -> dict[str, Any]:
    references = references or ReferenceTables()
    return {
        "version": FORMAT_VERSION,
        "name": session.name,
        "library_code": session.selected_library_code,
        "location_code": session.selected_location_code,
        "updated_at": session.updated_at.isoformat() if session.updated_at else None,
        "events": [event_to_dict(e) for e in session.scan_events],
        "libraries": dict(references.user_libraries),
        "locations": dict(references.user_locations),
    }


def session_from_dict(data: dict[str, Any]) -> tuple[Session, dict[str, str], dict[str, str]]:
    """Rebuild a session from its saved form.

    The seen-barcode set is derived from the surviving events rather than
    stored, so it cannot drift from them.

    Returns:
        Tuple of (session, user-added libraries, user-added locations).
    """
    events = [event_from_dict(e) for e in data.get("events", [])]
    updated_at = data.get("updated_at")
    session = Session(
        name=data.get("name", ""),
        selected_library_code=str(data["library_code"]),
        selected_location_code=data.get("location_code") or None,
        scan_events=events,
        seen_barcodes={e.normalized_barcode for e in events},
        updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
    )
    return session, dict(data.get("libraries") or {}), dict(data.get("locations") or {})


class JsonSessionStore:
    """Saves a session to one JSON file, replacing it atomically."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def save(self, session: Session, references: ReferenceTables) -> None:
        data = session_to_dict(session, references)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, ensure_ascii=False, indent=2)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except (OSError, ValueError, TypeError) as e:
            # ValueError covers text json cannot encode, e.g. lone surrogates
            raise PersistenceError(f"Could not write {self.path}: {e}") from e
        logger.debug("Saved session %r (%d events) to %s", session.name, len(session.scan_events), self.path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self, references: ReferenceTables | None = None) -> Session:
        """Load the saved session; user-added reference entries go into ``references``.

        Raises:
            PersistenceError: If the file is missing or not a valid session.
        """
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Could not read session {self.path}: {e}") from e

        try:
            session, libraries, locations = session_from_dict(data)
        except (KeyError, ValueError, TypeError) as e:
            raise PersistenceError(f"Malformed session file {self.path}: {e}") from e

        if references is not None:
            for code, name in libraries.items():
                references.add_library(code, name)
            for code, name in locations.items():
                references.add_location(code, name)
        logger.info("Loaded session %r with %d events from %s", session.name, len(session.scan_events), self.path)
        return session
