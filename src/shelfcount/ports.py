"""
Ports the core calls out through.

Sound playback and session storage live outside the core. The ledger only
asks for "play this signal" and "save this session"; what happens next is
up to the adapter plugged in.
"""
from __future__ import annotations

import sys
from enum import Enum
from typing import TYPE_CHECKING, Protocol, TextIO

from .models import WarningKind

if TYPE_CHECKING:
    from .models import ScanEvent, Session
    from .reference import ReferenceTables


class Signal(Enum):
    """Audible/visual cue requested once per interactive scan."""
    SUCCESS = "success"
    MULTIPLE = "multiple"
    INVALID_STRUCTURE = "invalid_structure"
    LOCATION_MISMATCH = "location_mismatch"
    NOT_LOANABLE = "not_loanable"
    NOT_IN_COLLECTION = "not_in_collection"
    ON_LOAN = "on_loan"
    WRONG_LIBRARY = "wrong_library"
    NOT_FOUND = "not_found"
    AUTO_COMPLETED_NOT_FOUND = "auto_completed_not_found"
    DUPLICATE = "duplicate"

    @classmethod
    def for_warning(cls, kind: WarningKind) -> Signal:
        return cls(kind.value)


class NotificationPort(Protocol):
    def notify(self, signal: Signal, event: ScanEvent) -> None: ...


class PersistencePort(Protocol):
    def save(self, session: Session, references: ReferenceTables) -> None: ...


class NullNotifier:
    def notify(self, signal: Signal, event: ScanEvent) -> None:
        pass


class NullStore:
    def save(self, session: Session, references: ReferenceTables) -> None:
        pass


class RecordingNotifier:
    """Keeps every requested signal, newest last."""

    def __init__(self):
        self.signals: list[Signal] = []

    def notify(self, signal: Signal, event: ScanEvent) -> None:
        self.signals.append(signal)


# Number of terminal bells per signal
BELLS = {
    Signal.SUCCESS: 0,
    Signal.MULTIPLE: 3,
    Signal.DUPLICATE: 2,
}


class TerminalNotifier:
    """Rings the terminal bell: silent for clean scans, louder for trouble."""

    def __init__(self, stream: TextIO | None = None):
        self.stream = stream if stream is not None else sys.stdout

    def notify(self, signal: Signal, event: ScanEvent) -> None:
        bells = BELLS.get(signal, 1)
        if bells:
            self.stream.write("\a" * bells)
            self.stream.flush()
