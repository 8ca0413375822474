"""Tests for classifier module."""
import pytest

from shelfcount.classifier import ClassificationContext, classify, select_signal
from shelfcount.models import ScanWarning, WarningKind
from shelfcount.normalizer import normalize
from shelfcount.ports import Signal


def make_context(raw, index, references, library="12", location=None, seen=frozenset(), loanable=("0",)):
    normalized, auto_completed = normalize(raw, library)
    return ClassificationContext(
        normalized_barcode=normalized,
        raw_input=raw,
        was_auto_completed=auto_completed,
        selected_library_code=library,
        selected_location_code=location,
        index=index,
        references=references,
        seen_barcodes=seen,
        loanable_codes=frozenset(loanable),
    )


def kinds(result):
    return [w.kind for w in result.warnings]


class TestClassify:
    """Tests for classify function."""

    def test_clean_scan(self, index, references):
        """A record of the selected library, active, loanable and on the shelf is clean."""
        result = classify(make_context("101200000123", index, references))

        assert result.warnings == ()
        assert result.is_clean
        assert result.matched_record.title == "Clean Book"

    def test_clean_with_matching_location_filter(self, index, references):
        result = classify(make_context("101200000123", index, references, location="AB"))
        assert result.is_clean

    def test_auto_completed_not_found(self, index, references):
        result = classify(make_context("12345", index, references))

        assert kinds(result) == [WarningKind.AUTO_COMPLETED_NOT_FOUND]
        assert "101200012345" in result.warnings[0].message
        assert result.matched_record is None

    def test_not_found(self, index, references):
        result = classify(make_context("101299999999", index, references))
        assert kinds(result) == [WarningKind.NOT_FOUND]

    def test_foreign_prefix_names_owning_library(self, index, references):
        result = classify(make_context("101300000001", index, references))

        assert kinds(result) == [WarningKind.WRONG_LIBRARY]
        assert result.warnings[0].library_code == "13"
        assert "Harbour Branch" in result.warnings[0].message
        # Structural failures never reach the catalog
        assert result.matched_record is None

    def test_unknown_prefix_is_invalid_structure(self, index, references):
        result = classify(make_context("555500000001", index, references))
        assert kinds(result) == [WarningKind.INVALID_STRUCTURE]

    def test_user_added_library_recognized(self, index, references):
        references.add_library("55", "Mobile Library")
        result = classify(make_context("105500000001", index, references))

        assert kinds(result) == [WarningKind.WRONG_LIBRARY]
        assert "Mobile Library" in result.warnings[0].message

    def test_record_owned_by_other_library(self, index, references):
        result = classify(make_context("101200000200", index, references))

        assert kinds(result) == [WarningKind.WRONG_LIBRARY]
        assert result.warnings[0].library_code == "13"
        assert result.matched_record.title == "Harbour Book"

    def test_location_mismatch_only_with_filter(self, index, references):
        assert classify(make_context("101200000124", index, references)).is_clean

        result = classify(make_context("101200000124", index, references, location="AB"))
        assert kinds(result) == [WarningKind.LOCATION_MISMATCH]
        assert "Children" in result.warnings[0].message

    def test_not_loanable_uses_eligibility_text(self, index, references):
        result = classify(make_context("101200000125", index, references))

        assert kinds(result) == [WarningKind.NOT_LOANABLE]
        assert "Reference only" in result.warnings[0].message

    def test_loanable_codes_are_policy(self, index, references):
        result = classify(make_context("101200000125", index, references, loanable=("0", "2")))
        assert result.is_clean

    def test_withdrawn_record(self, index, references):
        result = classify(make_context("101200000126", index, references))
        assert kinds(result) == [WarningKind.NOT_IN_COLLECTION]

    def test_on_loan(self, index, references):
        result = classify(make_context("101200000127", index, references))

        assert kinds(result) == [WarningKind.ON_LOAN]
        assert "2026-04-01" in result.warnings[0].message

    def test_record_warnings_accumulate_in_fixed_order(self, references):
        from shelfcount.catalog import CatalogIndex
        from shelfcount.models import CatalogRecord

        record = CatalogRecord("101200000999", "13", "ZZ", "9", "", "2", due_date="2026-05-01")
        index = CatalogIndex.build([record])

        result = classify(make_context("101200000999", index, references, location="AB"))

        assert kinds(result) == [
            WarningKind.WRONG_LIBRARY,
            WarningKind.LOCATION_MISMATCH,
            WarningKind.NOT_LOANABLE,
            WarningKind.NOT_IN_COLLECTION,
            WarningKind.ON_LOAN,
        ]
        # No eligibility text: message falls back to the code
        assert "code 9" in result.warnings[2].message

    def test_duplicate_short_circuits(self, index, references):
        ctx = make_context("101200000125", index, references, seen={"101200000125"})

        result = classify(ctx)

        assert kinds(result) == [WarningKind.DUPLICATE]

    def test_duplicate_of_foreign_barcode(self, index, references):
        """The duplicate check runs before the structural check."""
        result = classify(make_context("101300000001", index, references, seen={"101300000001"}))
        assert kinds(result) == [WarningKind.DUPLICATE]


class TestSelectSignal:
    """Tests for select_signal function."""

    def test_success_when_clean(self):
        assert select_signal(()) is Signal.SUCCESS

    @pytest.mark.parametrize("kind", list(WarningKind))
    def test_single_warning_has_own_signal(self, kind):
        assert select_signal([ScanWarning(kind, "x")]) is Signal(kind.value)

    def test_multiple_warnings(self):
        warnings = [ScanWarning(WarningKind.NOT_LOANABLE, "a"), ScanWarning(WarningKind.ON_LOAN, "b")]
        assert select_signal(warnings) is Signal.MULTIPLE
