"""
Session ledger: the ordered log of scan events for one count.

Every mutation (scan, delete, clear, bulk import) runs under one lock so
the event list and the seen-barcode set always change together. Bulk
imports are split into chunks; between chunks the ledger is consistent and
the caller gets control back, which is where a long import can be
cancelled.
"""
from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable, Collection, Iterable, Iterator
from dataclasses import dataclass, field, replace
from datetime import datetime

from .catalog import CatalogIndex
from .classifier import (
    DEFAULT_LOANABLE_CODES,
    ClassificationContext,
    classify,
    on_loan_warning,
    select_signal,
)
from .models import CatalogRecord, PersistenceError, ScanEvent, Session
from .normalizer import normalize
from .ports import NotificationPort, NullNotifier, NullStore, PersistencePort
from .reference import ReferenceTables

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 250


@dataclass
class BulkProgress:
    """Progress after one applied chunk."""
    processed: int
    total: int
    events: list[ScanEvent] = field(default_factory=list)
    skipped: int = 0

    @property
    def done(self) -> bool:
        return self.processed >= self.total


@dataclass
class BulkResult:
    events: list[ScanEvent] = field(default_factory=list)
    skipped: int = 0
    processed: int = 0

    @property
    def created(self) -> int:
        return len(self.events)


class SessionLedger:
    """Owns a session, the catalog index it is counted against, and the ports."""

    def __init__(
        self,
        session: Session,
        index: CatalogIndex | None = None,
        references: ReferenceTables | None = None,
        notifier: NotificationPort | None = None,
        store: PersistencePort | None = None,
        loanable_codes: Collection[str] = DEFAULT_LOANABLE_CODES,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        clock: Callable[[], datetime] = datetime.now,
    ):
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        self.session = session
        self.index = index if index is not None else CatalogIndex.empty()
        self.references = references if references is not None else ReferenceTables()
        self.notifier = notifier if notifier is not None else NullNotifier()
        self.store = store if store is not None else NullStore()
        self.loanable_codes = frozenset(loanable_codes)
        self.chunk_size = chunk_size
        self.clock = clock
        self.last_persistence_error: Exception | None = None
        self._lock = threading.RLock()

    @property
    def events(self) -> list[ScanEvent]:
        """Scan events, newest first."""
        with self._lock:
            return list(self.session.scan_events)

    def find_event(self, event_id: str) -> ScanEvent | None:
        with self._lock:
            for event in self.session.scan_events:
                if event.id == event_id:
                    return event
        return None

    def snapshot(self) -> tuple[Session, CatalogIndex]:
        """Copy of the session with the index it is counted against, taken under the lock.

        Statistics and reports are computed over the copy, so concurrent
        scans cannot change it halfway through.
        """
        with self._lock:
            session = replace(
                self.session,
                scan_events=list(self.session.scan_events),
                seen_barcodes=set(self.session.seen_barcodes),
            )
            return session, self.index

    def replace_index(self, index: CatalogIndex) -> None:
        """Count against a newly imported catalog from now on."""
        with self._lock:
            self.index = index
        logger.info("Ledger now uses %r", index)

    # -- single scans -------------------------------------------------------

    def add_scan(self, raw_input: str) -> ScanEvent | None:
        """Normalize, classify and record one input.

        Returns None (and records nothing) when the input has no digits.
        """
        with self._lock:
            event = self._add_scan(raw_input, notify=True)
            if event is not None:
                self._persist()
        return event

    def delete_scan(self, event_id: str) -> ScanEvent | None:
        """Remove one event; returns it, or None when the id is unknown."""
        with self._lock:
            events = self.session.scan_events
            for position, event in enumerate(events):
                if event.id == event_id:
                    break
            else:
                return None

            del events[position]
            barcode = event.normalized_barcode
            if not any(e.normalized_barcode == barcode for e in events):
                self.session.seen_barcodes.discard(barcode)
            self.session.updated_at = self.clock()
            logger.debug("Deleted scan %s (%s)", event_id, barcode)
            self._persist()
        return event

    def clear_all(self) -> None:
        with self._lock:
            count = len(self.session.scan_events)
            self.session.scan_events.clear()
            self.session.seen_barcodes.clear()
            self.session.updated_at = self.clock()
            logger.info("Cleared %d scans from session %r", count, self.session.name)
            self._persist()

    # -- bulk ---------------------------------------------------------------

    def iter_bulk_ingest(self, raw_inputs: Iterable[str], suppress_side_effects: bool = True) -> Iterator[BulkProgress]:
        """Apply inputs chunk by chunk, yielding progress after every chunk.

        Inputs are processed in order, so later inputs see earlier ones as
        already scanned. Closing the generator stops at a chunk boundary.
        """
        return self._iter_chunks(
            raw_inputs,
            lambda raw: self._add_scan(raw, notify=not suppress_side_effects),
        )

    def bulk_ingest(self, raw_inputs: Iterable[str], suppress_side_effects: bool = True) -> BulkResult:
        """Apply all inputs; same outcome as calling add_scan for each in order."""
        result = self._drain(self.iter_bulk_ingest(raw_inputs, suppress_side_effects))
        logger.info("Bulk import: %d scans recorded, %d inputs skipped", result.created, result.skipped)
        return result

    def iter_on_loan_overrides(self, raw_inputs: Iterable[str]) -> Iterator[BulkProgress]:
        return self._iter_chunks(raw_inputs, self._apply_on_loan)

    def apply_on_loan_overrides(self, raw_inputs: Iterable[str]) -> BulkResult:
        """Mark barcodes lent out during the count.

        Every barcode in the list ends up with exactly one event carrying a
        single on-loan warning; earlier events for it are dropped.
        """
        result = self._drain(self.iter_on_loan_overrides(raw_inputs))
        logger.info("On-loan overrides: %d barcodes marked, %d inputs skipped", result.created, result.skipped)
        return result

    # -- internals ----------------------------------------------------------

    def _iter_chunks(self, raw_inputs: Iterable[str], apply_one: Callable[[str], ScanEvent | None]) -> Iterator[BulkProgress]:
        inputs = list(raw_inputs)
        total = len(inputs)
        processed = 0
        try:
            for start in range(0, total, self.chunk_size):
                chunk = inputs[start:start + self.chunk_size]
                progress = BulkProgress(processed=0, total=total)
                with self._lock:
                    saved_events = list(self.session.scan_events)
                    saved_seen = set(self.session.seen_barcodes)
                    saved_updated_at = self.session.updated_at
                    try:
                        for raw in chunk:
                            event = apply_one(raw)
                            if event is None:
                                progress.skipped += 1
                            else:
                                progress.events.append(event)
                    except BaseException:
                        # A chunk is applied completely or not at all
                        self.session.scan_events[:] = saved_events
                        self.session.seen_barcodes.clear()
                        self.session.seen_barcodes.update(saved_seen)
                        self.session.updated_at = saved_updated_at
                        raise
                processed += len(chunk)
                progress.processed = processed
                yield progress
        finally:
            if processed:
                with self._lock:
                    self._persist()

    @staticmethod
    def _drain(progress_iter: Iterator[BulkProgress]) -> BulkResult:
        result = BulkResult()
        for progress in progress_iter:
            result.events.extend(progress.events)
            result.skipped += progress.skipped
            result.processed = progress.processed
        return result

    def _previous_record(self, barcode: str) -> CatalogRecord | None:
        for event in self.session.scan_events:
            if event.normalized_barcode == barcode and event.matched_record is not None:
                return event.matched_record
        return None

    def _add_scan(self, raw_input: str, notify: bool) -> ScanEvent | None:
        session = self.session
        normalized, auto_completed = normalize(raw_input, session.selected_library_code)
        if not normalized:
            return None

        duplicate = normalized in session.seen_barcodes
        ctx = ClassificationContext(
            normalized_barcode=normalized,
            raw_input=raw_input,
            was_auto_completed=auto_completed,
            selected_library_code=session.selected_library_code,
            selected_location_code=session.selected_location_code,
            index=self.index,
            references=self.references,
            seen_barcodes=session.seen_barcodes,
            loanable_codes=self.loanable_codes,
            previous_record=self._previous_record(normalized) if duplicate else None,
        )
        warnings, record = classify(ctx)

        event = self._record(raw_input, normalized, record, warnings, auto_completed)
        logger.debug("Scan %s -> %s", normalized, [w.kind.value for w in warnings] or "clean")

        if notify:
            self.notifier.notify(select_signal(warnings), event)
        return event

    def _apply_on_loan(self, raw_input: str) -> ScanEvent | None:
        session = self.session
        normalized, auto_completed = normalize(raw_input, session.selected_library_code)
        if not normalized:
            return None

        if normalized in session.seen_barcodes:
            session.scan_events[:] = [e for e in session.scan_events if e.normalized_barcode != normalized]
            session.seen_barcodes.discard(normalized)

        record = self.index.lookup(normalized)
        warning = on_loan_warning(record.due_date if record is not None else None)
        return self._record(raw_input, normalized, record, (warning,), auto_completed)

    def _record(self, raw_input, normalized, record, warnings, auto_completed) -> ScanEvent:
        now = self.clock()
        event = ScanEvent(
            id=uuid.uuid4().hex,
            raw_input=raw_input,
            normalized_barcode=normalized,
            matched_record=record,
            warnings=tuple(warnings),
            timestamp=now,
            auto_completed=auto_completed,
        )
        self.session.scan_events.insert(0, event)
        self.session.seen_barcodes.add(normalized)
        self.session.updated_at = now
        return event

    def _persist(self) -> None:
        try:
            self.store.save(self.session, self.references)
        except PersistenceError as e:
            self.last_persistence_error = e
            logger.warning("Could not save session %r: %s", self.session.name, e)
        except Exception as e:
            # Stores other than JsonSessionStore may raise anything
            self.last_persistence_error = e
            logger.exception("Could not save session %r", self.session.name)
        else:
            self.last_persistence_error = None
