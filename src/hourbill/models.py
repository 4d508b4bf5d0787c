"""Read-only records consumed by the billing pipeline.

Everything here is materialized up front by the persistence layer; nothing
lazily loads relations. Money and rates are Decimal.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal


@dataclass(frozen=True)
class Organization:
    id: str
    name: str


@dataclass(frozen=True)
class Client:
    id: str
    name: str
    organization_id: str
    hourly_rate: Decimal | None = None
    company: str = ""
    email: str = ""
    address: str = ""
    deleted_at: datetime | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


@dataclass(frozen=True)
class Invoice:
    id: str
    number: str
    client_id: str
    created_at: datetime
    due_date: date
    tax: Decimal | None = None       # fractional rate, e.g. Decimal("0.1")
    discount: Decimal | None = None  # absolute amount
    paid_at: datetime | None = None
    notes: str = ""

    @property
    def is_paid(self) -> bool:
        return self.paid_at is not None


@dataclass(frozen=True)
class TimeEntry:
    id: str
    start: datetime
    end: datetime | None = None  # None = timer still running
    hourly_rate: Decimal | None = None
    description: str = ""
    client_id: str | None = None
    invoice_id: str | None = None

    @property
    def is_running(self) -> bool:
        return self.end is None


@dataclass(frozen=True)
class EntryRecord:
    """A time entry joined with its client and invoice."""
    entry: TimeEntry
    client: Client | None = None
    invoice: Invoice | None = None


@dataclass(frozen=True)
class InvoiceSnapshot:
    """Invoice, client, organization and entries read in one transaction."""
    invoice: Invoice
    client: Client
    organization: Organization
    time_entries: tuple[TimeEntry, ...] = field(default_factory=tuple)
