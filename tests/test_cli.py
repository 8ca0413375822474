"""Tests for CLI module."""
import io
import json
import os
import subprocess
import sys
from unittest.mock import patch

import pytest

from shelfcount import cli, config
from shelfcount._version import __version__
from shelfcount.models import WarningKind
from shelfcount.storage import JsonSessionStore

CATALOG_CSV = """BARCODE,LIBRARY_CODE,LOCATION_CODE,LOAN_ELIGIBILITY_CODE,LOAN_ELIGIBILITY_TEXT,STATUS_CODE,DUE_DATE,TITLE,MATERIAL_TYPE
101200000123,12,AB,0,Loanable,0,,Clean Book,Book
101200000124,12,CD,0,Loanable,0,,Kids Book,Book
101200000125,12,AB,2,Reference only,0,,Atlas,Book
101200000127,12,AB,0,Loanable,0,2026-04-01,Lent Book,Book
101300000001,13,AB,0,Loanable,0,,Other Branch,Book
"""


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    """Empty working directory with a config file and a catalog extract."""
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("SHELFCOUNT_"):
            monkeypatch.delenv(key)
    (tmp_path / "shelfcount.json").write_text(json.dumps({
        "libraries": {"12": "Central Library", "13": "Harbour Branch"},
        "locations": {"AB": "Adult fiction"},
    }))
    (tmp_path / "catalog.csv").write_text(CATALOG_CSV, encoding="utf-8")
    with patch.object(config, '_get_config_dirs', return_value=[tmp_path]):
        yield tmp_path


@pytest.fixture
def cfg(workspace):
    return config.Config(workspace / "shelfcount.json")


@pytest.fixture
def opened(workspace, cfg):
    """A freshly initialized session opened against the catalog."""
    session_file = workspace / "count.json"
    assert cli.init_command(session_file, "12", name="Spring count", config=cfg) == 0
    return cli.open_ledger(session_file, workspace / "catalog.csv", cfg)


class TestVersion:
    """Tests for --version option."""

    def test_version_option_exits_with_version(self):
        result = subprocess.run(
            [sys.executable, "-m", "shelfcount.cli", "--version"],
            capture_output=True,
            text=True,
        )
        assert result.returncode == 0
        assert __version__ in result.stdout

    def test_version_short_option(self):
        result = subprocess.run(
            [sys.executable, "-m", "shelfcount.cli", "-V"],
            capture_output=True,
            text=True,
        )
        assert result.returncode == 0
        assert __version__ in result.stdout


class TestInitCommand:
    """Tests for init_command function."""

    def test_creates_session_file(self, workspace, cfg, capsys):
        session_file = workspace / "count.json"

        assert cli.init_command(session_file, "12", "AB", config=cfg) == 0

        session = JsonSessionStore(session_file).load()
        assert session.name == "count"
        assert session.selected_library_code == "12"
        assert session.selected_location_code == "AB"
        assert "Central Library (12)" in capsys.readouterr().out

    def test_refuses_to_overwrite(self, workspace, cfg):
        session_file = workspace / "count.json"
        cli.init_command(session_file, "12", config=cfg)

        assert cli.init_command(session_file, "13", config=cfg) == 1
        assert cli.init_command(session_file, "13", force=True, config=cfg) == 0
        assert JsonSessionStore(session_file).load().selected_library_code == "13"

    def test_rejects_non_numeric_library(self, workspace, cfg):
        assert cli.init_command(workspace / "count.json", "XY", config=cfg) == 1
        assert not (workspace / "count.json").exists()


class TestOpenLedger:
    """Tests for open_ledger function."""

    def test_missing_session(self, workspace, cfg, capsys):
        assert cli.open_ledger(workspace / "nope.json", None, cfg) is None
        assert "not found" in capsys.readouterr().out

    def test_bad_catalog(self, workspace, cfg, capsys):
        cli.init_command(workspace / "count.json", "12", config=cfg)
        (workspace / "bad.csv").write_text("TITLE\nNo barcodes here\n")

        assert cli.open_ledger(workspace / "count.json", workspace / "bad.csv", cfg) is None
        assert "BARCODE" in capsys.readouterr().out

    def test_without_catalog_warns(self, workspace, cfg, capsys):
        cli.init_command(workspace / "count.json", "12", config=cfg)

        ledger = cli.open_ledger(workspace / "count.json", None, cfg)

        assert ledger is not None
        assert len(ledger.index) == 0
        assert "No catalog" in capsys.readouterr().out


class TestScanCommand:
    """Tests for scan_command function."""

    def test_scans_arguments_and_saves(self, workspace, opened, capsys):
        assert cli.scan_command(opened, ["123", "101200000125", "no digits"]) == 0

        out = capsys.readouterr().out
        assert "✅ 101200000123  Clean Book" in out
        assert "Not loanable: Reference only" in out
        assert "Ignored input" in out
        saved = JsonSessionStore(workspace / "count.json").load()
        assert [e.normalized_barcode for e in saved.scan_events] == ["101200000125", "101200000123"]

    def test_interactive_undo(self, opened, capsys):
        stream = io.StringIO("123\n124\nundo\n124\n\n999\n")

        assert cli.scan_command(opened, stream=stream) == 0

        # The empty line ends the loop before 999 is read
        assert [e.normalized_barcode for e in opened.events] == ["101200000124", "101200000123"]
        assert opened.events[0].is_clean
        assert "Removed 101200000124" in capsys.readouterr().out


class TestImportCommand:
    """Tests for import_command function."""

    def test_bulk_import(self, workspace, opened, capsys):
        barcodes = workspace / "barcodes.txt"
        barcodes.write_text("123\n124\n-\n123\n")

        assert cli.import_command(opened, barcodes) == 0

        assert len(opened.events) == 3
        assert opened.events[0].warning_kinds == [WarningKind.DUPLICATE]
        out = capsys.readouterr().out
        assert "3 scans recorded" in out
        assert "1 lines without digits skipped" in out

    def test_on_loan_replaces_earlier_scan(self, workspace, opened):
        opened.add_scan("124")
        loans = workspace / "loans.txt"
        loans.write_text("124\n")

        assert cli.import_command(opened, loans, on_loan=True) == 0

        (event,) = opened.events
        assert event.warning_kinds == [WarningKind.ON_LOAN]

    def test_unsupported_file(self, workspace, opened):
        path = workspace / "barcodes.pdf"
        path.write_bytes(b"%PDF")
        assert cli.import_command(opened, path) == 1


class TestDeleteAndClear:
    def test_delete(self, opened):
        event = opened.add_scan("123")
        assert cli.delete_command(opened, event.id) == 0
        assert opened.events == []
        assert cli.delete_command(opened, event.id) == 1

    def test_clear_with_yes(self, opened):
        opened.add_scan("123")
        assert cli.clear_command(opened, yes=True) == 0
        assert opened.events == []

    def test_clear_aborted(self, opened):
        opened.add_scan("123")
        with patch('builtins.input', return_value='n'):
            assert cli.clear_command(opened) == 1
        assert len(opened.events) == 1


class TestStatsAndReports:
    def test_stats_json(self, opened, capsys):
        opened.add_scan("123")
        opened.add_scan("125")
        capsys.readouterr()

        assert cli.stats_command(opened, as_json=True) == 0

        stats = json.loads(capsys.readouterr().out)
        assert stats["in_scope"] == 4
        assert stats["valid"] == 1
        assert stats["warned"] == 1
        assert stats["missing"] == 2

    def test_stats_text(self, opened, capsys):
        opened.add_scan("123")
        assert cli.stats_command(opened) == 0
        out = capsys.readouterr().out
        assert "Central Library (12)" in out
        assert "Missing: 3" in out

    def test_stats_text_uses_warning_labels(self, opened, capsys):
        opened.add_scan("125")
        capsys.readouterr()

        cli.stats_command(opened)

        out = capsys.readouterr().out
        assert "Not loanable" in out
        assert "not_loanable" not in out

    def test_report_writes_files(self, workspace, opened):
        opened.add_scan("123")
        output_dir = workspace / "reports"

        assert cli.report_command(opened, output_dir, ["missing", "clean"]) == 0

        assert (output_dir / "missing.csv").exists()
        assert (output_dir / "clean.csv").exists()
        assert not (output_dir / "duplicates.csv").exists()
        write_off = (output_dir / "write-off.txt").read_text().split()
        assert write_off == ["101200000124", "101200000125", "101200000127"]

    def test_report_unknown_name(self, workspace, opened):
        assert cli.report_command(opened, workspace / "reports", ["bogus"]) == 1

    def test_report_unknown_format(self, workspace, opened):
        assert cli.report_command(opened, workspace / "reports", output_format="pdf") == 1


class TestReferenceCommand:
    def test_adds_library_to_session(self, workspace, opened, cfg):
        assert cli.reference_command(workspace / "count.json", "library", "55", "Mobile Library", cfg) == 0

        ledger = cli.open_ledger(workspace / "count.json", None, cfg)
        assert ledger.references.library_name("55") == "Mobile Library"
        assert ledger.references.library_name("12") == "Central Library"


class TestConfigCommand:
    """Tests for config_command function."""

    def test_show_path(self, workspace, capsys):
        assert cli.config_command(show_path=True) == 0
        assert capsys.readouterr().out.strip() == str(workspace / "shelfcount.json")

    def test_show_merged(self, workspace, capsys):
        assert cli.config_command() == 0

        out = capsys.readouterr().out
        data = json.loads(out.split("\n", 2)[2])
        assert data["libraries"]["13"] == "Harbour Branch"
        assert data["policy"]["loanable_codes"] == ["0"]


class TestMain:
    """Tests for the main() dispatcher."""

    def test_init_scan_stats(self, workspace, capsys):
        with patch.object(sys, 'argv', ['shelfcount', 'init', 'count.json', '--library', '12']):
            assert cli.main() == 0
        with patch.object(sys, 'argv', ['shelfcount', 'scan', 'count.json', '-c', 'catalog.csv', '-q', '-b', '123']):
            assert cli.main() == 0
        capsys.readouterr()
        with patch.object(sys, 'argv', ['shelfcount', 'stats', 'count.json', '-c', 'catalog.csv', '--json']):
            assert cli.main() == 0

        assert json.loads(capsys.readouterr().out)["valid"] == 1

    def test_session_file_from_config(self, workspace):
        (workspace / "shelfcount.json").write_text(json.dumps({"session_file": "cfg.json", "library_code": "12"}))
        with patch.object(sys, 'argv', ['shelfcount', 'init']):
            assert cli.main() == 0
        assert (workspace / "cfg.json").exists()

    def test_no_command_prints_help(self, workspace):
        with patch.object(sys, 'argv', ['shelfcount']):
            assert cli.main() == 1
