"""Shared fixtures: a small catalog for library 12 ("1012" barcode prefix)."""
from datetime import datetime, timedelta

import pytest

from shelfcount.catalog import CatalogIndex
from shelfcount.ledger import SessionLedger
from shelfcount.models import CatalogRecord, Session
from shelfcount.ports import RecordingNotifier
from shelfcount.reference import ReferenceTables


class FakeClock:
    """Returns a new timestamp, 30 seconds later, on every call."""

    def __init__(self, start=datetime(2026, 3, 2, 9, 0, 0), step=timedelta(seconds=30)):
        self.now = start
        self.step = step

    def __call__(self):
        value = self.now
        self.now += self.step
        return value


@pytest.fixture
def records():
    return [
        CatalogRecord("101200000123", "12", "AB", "0", "Loanable", "0", title="Clean Book", material_type="Book"),
        CatalogRecord("101200000124", "12", "CD", "0", "Loanable", "0", title="Kids Book", material_type="Book"),
        CatalogRecord("101200000125", "12", "AB", "2", "Reference only", "0", title="Atlas", material_type="Book"),
        CatalogRecord("101200000126", "12", "AB", "0", "Loanable", "1", title="Withdrawn Book", material_type="Book"),
        CatalogRecord("101200000127", "12", "AB", "0", "Loanable", "0", due_date="2026-04-01",
                      title="Lent Book", material_type="Book"),
        CatalogRecord("101200000128", "12", "CD", "0", "Loanable", "0", title="Lost DVD", material_type="DVD"),
        CatalogRecord("101200000200", "13", "AB", "0", "Loanable", "0", title="Harbour Book", material_type="Book"),
        CatalogRecord("101300000001", "13", "AB", "0", "Loanable", "0", title="Other Branch", material_type="Book"),
    ]


@pytest.fixture
def index(records):
    return CatalogIndex.build(records)


@pytest.fixture
def references():
    return ReferenceTables(
        libraries={"12": "Central Library", "13": "Harbour Branch"},
        locations={"AB": "Adult fiction", "CD": "Children"},
    )


@pytest.fixture
def session():
    return Session(name="Spring count", selected_library_code="12")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def ledger(session, index, references, notifier, clock):
    return SessionLedger(session, index=index, references=references, notifier=notifier, clock=clock)
