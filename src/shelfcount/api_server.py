#!/usr/bin/env python3
"""
FastAPI server exposing one count session over HTTP.

A scanner front end posts raw barcodes and gets the classification (and
the signal to play) back; statistics and reports are computed on request.
"""
from pathlib import Path
from typing import Any, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from . import reports
from ._version import __version__
from .catalog import load_catalog
from .classifier import select_signal
from .ledger import BulkResult, SessionLedger
from .models import CatalogImportError, ScanEvent
from .storage import event_to_dict


class ScanRequest(BaseModel):
    """Raw input from a scanner or keyboard."""
    raw: str


class BulkRequest(BaseModel):
    barcodes: list[str]


class CatalogRequest(BaseModel):
    path: str


class ScanResponse(BaseModel):
    event: Optional[dict[str, Any]] = None
    signal: Optional[str] = None


class BulkResponse(BaseModel):
    created: int
    skipped: int


class ReportResponse(BaseModel):
    name: str
    title: str
    columns: list[str]
    rows: list[dict[str, Any]]


def _bulk_response(result: BulkResult) -> BulkResponse:
    return BulkResponse(created=result.created, skipped=result.skipped)


def _event(event: ScanEvent) -> dict[str, Any]:
    data = event_to_dict(event)
    data["clean"] = event.is_clean
    return data


def create_app(ledger: SessionLedger) -> FastAPI:
    """Build the API around an already opened ledger."""
    app = FastAPI(title="shelfcount API", version=__version__)
    app.state.ledger = ledger

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {"status": "ok", "catalog_records": len(ledger.index), "scans": len(ledger.events)}

    @app.get("/session")
    def get_session() -> dict[str, Any]:
        session, _ = ledger.snapshot()
        return {
            "name": session.name,
            "library_code": session.selected_library_code,
            "library_name": ledger.references.library_name(session.selected_library_code),
            "location_code": session.selected_location_code,
            "updated_at": session.updated_at.isoformat() if session.updated_at else None,
            "events": [_event(e) for e in session.scan_events],
        }

    @app.post("/catalog")
    def import_catalog(request: CatalogRequest) -> dict[str, Any]:
        try:
            index = load_catalog(Path(request.path))
        except CatalogImportError as e:
            raise HTTPException(status_code=400, detail=str(e))
        ledger.replace_index(index)
        return {"records": len(index)}

    @app.post("/scans", response_model=ScanResponse)
    def add_scan(request: ScanRequest) -> ScanResponse:
        event = ledger.add_scan(request.raw)
        if event is None:
            return ScanResponse()
        return ScanResponse(event=_event(event), signal=select_signal(event.warnings).value)

    @app.post("/scans/bulk", response_model=BulkResponse)
    def bulk_scans(request: BulkRequest) -> BulkResponse:
        return _bulk_response(ledger.bulk_ingest(request.barcodes, suppress_side_effects=True))

    @app.post("/scans/on-loan", response_model=BulkResponse)
    def on_loan_scans(request: BulkRequest) -> BulkResponse:
        return _bulk_response(ledger.apply_on_loan_overrides(request.barcodes))

    @app.delete("/scans/{event_id}")
    def delete_scan(event_id: str) -> dict[str, Any]:
        event = ledger.delete_scan(event_id)
        if event is None:
            raise HTTPException(status_code=404, detail=f"Scan {event_id} not found")
        return {"deleted": event_id, "barcode": event.normalized_barcode}

    @app.delete("/scans")
    def clear_scans() -> dict[str, Any]:
        count = len(ledger.events)
        ledger.clear_all()
        return {"deleted": count}

    @app.get("/stats")
    def stats() -> dict[str, Any]:
        session, index = ledger.snapshot()
        return reports.compute_statistics(session, index).to_dict()

    @app.get("/reports/write-off", response_class=PlainTextResponse)
    def write_off() -> str:
        session, index = ledger.snapshot()
        barcodes = reports.write_off_barcodes(session, index)
        return "\n".join(barcodes) + ("\n" if barcodes else "")

    @app.get("/reports/{name}", response_model=ReportResponse)
    def report(name: str) -> ReportResponse:
        spec = reports.REPORTS.get(name)
        if spec is None:
            raise HTTPException(status_code=404, detail=f"Unknown report: {name}")
        session, index = ledger.snapshot()
        rows = spec.build(session, index, ledger.references)
        return ReportResponse(name=name, title=spec.title, columns=spec.columns, rows=rows)

    return app
