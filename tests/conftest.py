"""Shared test fixtures for hourbill tests."""

from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from hourbill import db
from hourbill.logging_setup import reset_logging
from hourbill.models import Client, EntryRecord, Invoice, InvoiceSnapshot, Organization, TimeEntry

T0 = datetime(2024, 3, 4, 9, 0)


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    reset_logging()


@pytest.fixture
def db_path(tmp_path):
    """Initialize a real SQLite database using schema.sql and return its path."""
    path = tmp_path / "test.db"
    db.init_db(path)
    return path


@pytest.fixture
def db_conn(db_path):
    """Yield a database connection with row factory set."""
    with db.get_db(db_path) as conn:
        yield conn


@pytest.fixture
def make_client():
    def _make_client(**overrides):
        defaults = {
            "id": "client-1",
            "name": "Acme Corp",
            "organization_id": "org-1",
            "hourly_rate": Decimal("100"),
        }
        defaults.update(overrides)
        return Client(**defaults)
    return _make_client


@pytest.fixture
def make_entry():
    """Factory for finished time entries; `hours` sets end relative to start."""
    counter = iter(range(1, 10_000))

    def _make_entry(hours=1, start=T0, **overrides):
        defaults = {
            "id": f"entry-{next(counter)}",
            "start": start,
            "end": start + timedelta(hours=hours) if hours is not None else None,
            "client_id": "client-1",
        }
        defaults.update(overrides)
        return TimeEntry(**defaults)
    return _make_entry


@pytest.fixture
def make_invoice():
    def _make_invoice(**overrides):
        defaults = {
            "id": "inv-1",
            "number": "INV-0001",
            "client_id": "client-1",
            "created_at": datetime(2024, 3, 31, 12, 0),
            "due_date": date(2024, 4, 30),
        }
        defaults.update(overrides)
        return Invoice(**defaults)
    return _make_invoice


@pytest.fixture
def make_snapshot(make_client, make_invoice):
    def _make_snapshot(entries, client=None, **invoice_overrides):
        return InvoiceSnapshot(
            invoice=make_invoice(**invoice_overrides),
            client=client or make_client(),
            organization=Organization(id="org-1", name="Hourly Ltd"),
            time_entries=tuple(entries),
        )
    return _make_snapshot


@pytest.fixture
def record():
    def _record(entry, client=None, invoice=None):
        return EntryRecord(entry=entry, client=client, invoice=invoice)
    return _record
