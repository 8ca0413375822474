#!/usr/bin/env python3
# PYTHON_ARGCOMPLETE_OK
"""
Command-line interface for shelfcount
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import TextIO

import argcomplete

from . import reports, tabular
from ._version import __version__
from .catalog import CatalogIndex, load_catalog
from .config import Config
from .ledger import SessionLedger
from .models import CatalogImportError, PersistenceError, ScanEvent, Session, UnsupportedFormatError, WarningKind
from .normalizer import library_prefix
from .ports import NotificationPort, TerminalNotifier
from .reference import ReferenceTables
from .storage import JsonSessionStore


def _references(config: Config) -> ReferenceTables:
    return ReferenceTables(libraries=config.libraries, locations=config.locations)


def open_ledger(
    session_file: Path,
    catalog_file: Path | None,
    config: Config,
    notifier: NotificationPort | None = None,
) -> SessionLedger | None:
    """Load a saved session and its catalog into a ledger, or print why not."""
    store = JsonSessionStore(session_file)
    if not store.exists():
        print(f"❌ Session file {session_file} not found")
        print("Run 'shelfcount init' first")
        return None

    references = _references(config)
    try:
        session = store.load(references)
    except PersistenceError as e:
        print(f"❌ {e}")
        return None

    index = CatalogIndex.empty()
    if catalog_file is not None:
        try:
            index = load_catalog(catalog_file)
        except CatalogImportError as e:
            print(f"❌ {e}")
            return None
    else:
        print("⚠️  No catalog given, every scan will be reported as not found")

    return SessionLedger(
        session,
        index=index,
        references=references,
        notifier=notifier,
        store=store,
        loanable_codes=config.loanable_codes,
        chunk_size=config.chunk_size,
    )


def _report_persistence(ledger: SessionLedger) -> None:
    if ledger.last_persistence_error is not None:
        print(f"⚠️  Session not saved: {ledger.last_persistence_error}")


def format_event(event: ScanEvent) -> str:
    """One line describing a classified scan."""
    title = event.matched_record.title if event.matched_record else ""
    if event.is_clean:
        return f"✅ {event.normalized_barcode}  {title}".rstrip()
    marker = "🔁" if event.warning_kinds == [WarningKind.DUPLICATE] else "⚠️ "
    line = f"{marker} {event.normalized_barcode}  {title}".rstrip()
    return line + "\n" + "\n".join(f"     - {w.message}" for w in event.warnings)


def init_command(
    session_file: Path,
    library_code: str,
    location_code: str | None = None,
    name: str | None = None,
    force: bool = False,
    config: Config | None = None,
) -> int:
    """Create a new, empty count session."""
    session_file = Path(session_file)
    if session_file.exists() and not force:
        print(f"⚠️  {session_file} already exists (use --force to overwrite)")
        return 1

    if not library_prefix(library_code):
        print(f"❌ Library code must be numeric, got {library_code!r}")
        return 1

    session = Session(
        name=name or session_file.stem,
        selected_library_code=library_code,
        selected_location_code=location_code or None,
    )
    references = _references(config) if config is not None else ReferenceTables()
    try:
        JsonSessionStore(session_file).save(session, references)
    except PersistenceError as e:
        print(f"❌ {e}")
        return 1

    library = references.describe_library(library_code)
    print(f"✅ Created session '{session.name}' for {library} in {session_file}")
    if location_code:
        print(f"   Location filter: {location_code}")
    return 0


def scan_command(ledger: SessionLedger, barcodes: list[str] | None = None, stream: TextIO | None = None) -> int:
    """Scan barcodes given on the command line, or read them interactively.

    In interactive mode every line is one scan; "undo" removes the most
    recent scan and an empty line or EOF ends the session.
    """
    if barcodes:
        for raw in barcodes:
            event = ledger.add_scan(raw)
            if event is None:
                print(f"⏭️  Ignored input without digits: {raw!r}")
            else:
                print(format_event(event))
        _report_persistence(ledger)
        return 0

    stream = stream if stream is not None else sys.stdin
    print("📷 Scan or type barcodes (empty line to finish, 'undo' to remove the last scan)")
    for line in stream:
        raw = line.strip()
        if not raw:
            break
        if raw.lower() == "undo":
            events = ledger.events
            if not events:
                print("Nothing to undo")
                continue
            removed = ledger.delete_scan(events[0].id)
            print(f"↩️  Removed {removed.normalized_barcode}")
            continue
        event = ledger.add_scan(raw)
        if event is None:
            continue
        print(format_event(event))
        _report_persistence(ledger)

    print(f"\n📊 {len(ledger.events)} scans in session '{ledger.session.name}'")
    return 0


def import_command(ledger: SessionLedger, barcode_file: Path, on_loan: bool = False) -> int:
    """Bulk import raw barcodes from a text or table file."""
    try:
        raw_inputs = tabular.read_barcode_list(barcode_file)
    except (UnsupportedFormatError, OSError) as e:
        print(f"❌ {e}")
        return 1

    print(f"🔄 Importing {len(raw_inputs)} barcodes from {barcode_file}...")
    if on_loan:
        progress_iter = ledger.iter_on_loan_overrides(raw_inputs)
    else:
        progress_iter = ledger.iter_bulk_ingest(raw_inputs, suppress_side_effects=True)

    created = skipped = 0
    try:
        for progress in progress_iter:
            created += len(progress.events)
            skipped += progress.skipped
            if not progress.done:
                print(f"   {progress.processed}/{progress.total}")
    except KeyboardInterrupt:
        progress_iter.close()
        print(f"\n⚠️  Import interrupted, {created} scans kept")
        _report_persistence(ledger)
        return 1

    label = "marked on loan" if on_loan else "recorded"
    print(f"✅ {created} scans {label}")
    if skipped:
        print(f"   {skipped} lines without digits skipped")
    _report_persistence(ledger)
    return 0


def delete_command(ledger: SessionLedger, event_id: str) -> int:
    event = ledger.delete_scan(event_id)
    if event is None:
        print(f"❌ No scan with id {event_id}")
        return 1
    print(f"✅ Removed scan {event_id} ({event.normalized_barcode})")
    _report_persistence(ledger)
    return 0


def clear_command(ledger: SessionLedger, yes: bool = False) -> int:
    if not yes:
        response = input(f"Remove all {len(ledger.events)} scans from '{ledger.session.name}'? [y/N] ")
        if response.lower() != 'y':
            print("Aborted.")
            return 1
    ledger.clear_all()
    print("✅ Session cleared")
    _report_persistence(ledger)
    return 0


def stats_command(ledger: SessionLedger, as_json: bool = False) -> int:
    """Print coverage and distribution statistics."""
    session, index = ledger.snapshot()
    stats = reports.compute_statistics(session, index)

    if as_json:
        print(json.dumps(stats.to_dict(), indent=2, ensure_ascii=False))
        return 0

    cov = stats.coverage
    print(f"📊 Session '{session.name}' - {ledger.references.describe_library(session.selected_library_code)}")
    print(f"   In scope:  {cov.total}")
    print(f"   ✅ Valid:   {cov.valid}")
    print(f"   ⚠️  Warned:  {cov.warned}")
    print(f"   ❓ Missing: {cov.missing}")
    print(f"   Scanned {cov.percent_scanned:.1f}% ({stats.scan_count} scans, "
          f"{reports.format_throughput(stats.throughput_per_minute)})")

    if stats.warnings:
        print("\nWarnings:")
        for kind, count in stats.warnings.items():
            print(f"   {WarningKind(kind).label:<34} {count}")

    if stats.locations:
        print("\nBy location:")
        for code, loc in stats.locations.items():
            print(f"   {code or '-':<12} valid {loc.valid:>5}  warned {loc.warned:>5}  missing {loc.missing:>5}")

    if stats.material_types:
        print("\nMaterial types:")
        for material, count in stats.material_types.items():
            print(f"   {material:<26} {count}")
    return 0


def report_command(ledger: SessionLedger, output_dir: Path, names: list[str] | None = None, output_format: str = "csv") -> int:
    """Write report tables and the write-off list to a directory."""
    if output_format not in ("csv", "xlsx"):
        print(f"❌ Unknown report format: {output_format}")
        return 1

    names = names or list(reports.REPORTS)
    unknown = [name for name in names if name not in reports.REPORTS]
    if unknown:
        print(f"❌ Unknown report(s): {', '.join(unknown)}")
        print(f"   Available: {', '.join(reports.REPORTS)}")
        return 1

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    session, index = ledger.snapshot()

    for name in names:
        spec = reports.REPORTS[name]
        rows = spec.build(session, index, ledger.references)
        path = output_dir / f"{name}.{output_format}"
        tabular.write_table(path, spec.columns, rows, title=spec.title)
        print(f"✅ {spec.title}: {len(rows)} rows -> {path}")

    write_off = output_dir / "write-off.txt"
    count = tabular.write_barcode_list(write_off, reports.write_off_barcodes(session, index))
    print(f"✅ Write-off candidates: {count} barcodes -> {write_off}")
    return 0


def reference_command(session_file: Path, kind: str, code: str, name: str, config: Config) -> int:
    """Add a user-defined library or location name to a session."""
    store = JsonSessionStore(session_file)
    references = _references(config)
    try:
        session = store.load(references)
        if kind == "library":
            references.add_library(code, name)
        else:
            references.add_location(code, name)
        store.save(session, references)
    except PersistenceError as e:
        print(f"❌ {e}")
        return 1
    print(f"✅ Added {kind} {code}: {name}")
    return 0


def api_command(ledger: SessionLedger, host: str = "127.0.0.1", port: int = 8765) -> int:
    """Serve the session over HTTP."""
    try:
        import uvicorn

        from .api_server import create_app
    except ImportError as e:
        print(f"❌ Missing required package: {e}")
        print("\nInstall API server dependencies:")
        print("  pip install shelfcount[api]")
        return 1

    print("🚀 Starting shelfcount API server...")
    print(f"📂 Session: {ledger.session.name}")
    print(f"🌐 Server will run at: http://{host}:{port}")
    print("Press Ctrl+C to stop\n")

    try:
        uvicorn.run(create_app(ledger), host=host, port=port, log_level="info")
    except KeyboardInterrupt:
        print("\n\n👋 API server stopped")
    return 0


def config_command(show_path: bool = False) -> int:
    """Show configuration information."""
    config = Config()

    if show_path:
        if config.path:
            print(config.path)
        else:
            print("No configuration file found")
        return 0

    if config.path:
        print(f"# Configuration loaded from: {config.path}")
    else:
        print("# No configuration file found, showing defaults")
    print()
    print(json.dumps(config.data, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser_cli = argparse.ArgumentParser(
        description="shelfcount - library shelf inventory counting",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start a count for library 12, shelf AB
  shelfcount init count.json --library 12 --location AB

  # Scan interactively against a catalog extract
  shelfcount scan count.json --catalog catalog.xlsx

  # Import a list of barcodes collected offline
  shelfcount import count.json barcodes.txt --catalog catalog.xlsx

  # Show coverage and write all reports
  shelfcount stats count.json --catalog catalog.xlsx
  shelfcount report count.json --catalog catalog.xlsx -o reports/
        """
    )
    parser_cli.add_argument('--version', '-V', action='version', version=f'%(prog)s {__version__}')
    parser_cli.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')

    subparsers = parser_cli.add_subparsers(dest='command', help='Command to run')

    config_parser = subparsers.add_parser('config', help='Show merged configuration')
    config_parser.add_argument('--path', action='store_true', help='Show config file path')

    init_parser = subparsers.add_parser('init', help='Create a new count session')
    init_parser.add_argument('session', type=Path, nargs='?', help='Session file (default: from config)')
    init_parser.add_argument('--library', '-l', type=str, help='Library code being counted (default: from config)')
    init_parser.add_argument('--location', type=str, help='Only count items shelved at this location code')
    init_parser.add_argument('--name', type=str, help='Session name (default: file name)')
    init_parser.add_argument('--force', action='store_true', help='Overwrite an existing session file')

    def add_session_args(sub: argparse.ArgumentParser) -> None:
        sub.add_argument('session', type=Path, nargs='?', help='Session file (default: from config)')
        sub.add_argument('--catalog', '-c', type=Path, help='Catalog extract, CSV or XLSX (default: from config)')

    scan_parser = subparsers.add_parser('scan', help='Scan barcodes (arguments or interactive)')
    add_session_args(scan_parser)
    scan_parser.add_argument('--barcode', '-b', action='append', dest='barcodes', help='Barcode to scan (repeatable)')
    scan_parser.add_argument('--quiet', '-q', action='store_true', help='Do not ring the terminal bell')

    import_parser = subparsers.add_parser('import', help='Bulk import barcodes from a text or table file')
    import_parser.add_argument('file', type=Path, help='Barcode list (.txt, .csv, .xlsx)')
    add_session_args(import_parser)
    import_parser.add_argument('--on-loan', action='store_true',
                               help='Mark the listed barcodes as lent out during the count')

    delete_parser = subparsers.add_parser('delete', help='Remove one scan by id')
    delete_parser.add_argument('event_id', help='Scan id')
    add_session_args(delete_parser)

    clear_parser = subparsers.add_parser('clear', help='Remove all scans from the session')
    add_session_args(clear_parser)
    clear_parser.add_argument('--yes', '-y', action='store_true', help='Do not ask for confirmation')

    stats_parser = subparsers.add_parser('stats', help='Show coverage statistics')
    add_session_args(stats_parser)
    stats_parser.add_argument('--json', action='store_true', help='Output as JSON')

    report_parser = subparsers.add_parser('report', help='Write report tables and the write-off list')
    add_session_args(report_parser)
    report_parser.add_argument('--output-dir', '-o', type=Path, default=Path('reports'), help='Output directory')
    report_parser.add_argument('--name', '-n', action='append', dest='names', choices=list(reports.REPORTS),
                               help='Report to write (repeatable, default: all)')
    report_parser.add_argument('--format', '-f', choices=['csv', 'xlsx'], help='Table format (default: from config)')

    reference_parser = subparsers.add_parser('reference', help='Add a library or location name to a session')
    reference_parser.add_argument('kind', choices=['library', 'location'])
    reference_parser.add_argument('code')
    reference_parser.add_argument('name')
    reference_parser.add_argument('--session', type=Path, help='Session file (default: from config)')

    api_parser = subparsers.add_parser('api', help='Start the HTTP API server for a session')
    add_session_args(api_parser)
    api_parser.add_argument('--port', '-p', type=int, default=None, help='Port (default: from config or 8765)')
    api_parser.add_argument('--host', type=str, default=None, help='Host (default: from config or 127.0.0.1)')

    return parser_cli


def main() -> int:
    """Main entry point for the CLI."""
    config = Config()
    parser_cli = build_parser()

    argcomplete.autocomplete(parser_cli)

    args = parser_cli.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command == 'config':
        return config_command(show_path=args.path)

    if args.command is None:
        parser_cli.print_help()
        return 1

    session_file = args.session or config.session_file
    if session_file is None:
        print("Error: session file required (or set session_file in config)", file=sys.stderr)
        return 1

    if args.command == 'init':
        library_code = args.library or config.library_code
        if library_code is None:
            print("Error: --library required (or set library_code in config)", file=sys.stderr)
            return 1
        return init_command(session_file, library_code, args.location or config.location_code,
                            args.name, args.force, config)
    if args.command == 'reference':
        return reference_command(session_file, args.kind, args.code, args.name, config)

    catalog_file = args.catalog or config.catalog_file
    notifier = None
    if args.command == 'scan' and not args.quiet:
        notifier = TerminalNotifier()
    ledger = open_ledger(session_file, catalog_file, config, notifier=notifier)
    if ledger is None:
        return 1

    if args.command == 'scan':
        return scan_command(ledger, args.barcodes)
    elif args.command == 'import':
        return import_command(ledger, args.file, on_loan=args.on_loan)
    elif args.command == 'delete':
        return delete_command(ledger, args.event_id)
    elif args.command == 'clear':
        return clear_command(ledger, yes=args.yes)
    elif args.command == 'stats':
        return stats_command(ledger, as_json=args.json)
    elif args.command == 'report':
        return report_command(ledger, args.output_dir, args.names, args.format or config.report_format)
    elif args.command == 'api':
        port = args.port if args.port is not None else config.api_port
        host = args.host if args.host is not None else config.api_host
        return api_command(ledger, host, port)

    parser_cli.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
