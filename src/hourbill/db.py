"""SQLite persistence for clients, invoices and time entries.

The pipeline only reads from here: `load_invoice_snapshot` returns the
invoice, its client and organization, and every attached time entry from a
single read transaction. The write helpers exist for the CLI and tests.
"""

import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Iterator

from .errors import InvoiceNotFoundError
from .models import Client, EntryRecord, Invoice, InvoiceSnapshot, Organization, TimeEntry

logger = logging.getLogger("hourbill.db")

SCHEMA_PATH = Path(__file__).parent / "schema.sql"


def init_db(db_path: Path) -> None:
    """Initialize database with schema."""
    with sqlite3.connect(db_path) as conn:
        conn.executescript(SCHEMA_PATH.read_text())


@contextmanager
def get_db(db_path: Path) -> Iterator[sqlite3.Connection]:
    """Get database connection with row factory."""
    # timeout=30.0 waits up to 30s for locks instead of failing immediately
    conn = sqlite3.connect(db_path, timeout=30.0)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


@contextmanager
def _read_transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Hold one read transaction so joined reads see a single snapshot."""
    if conn.in_transaction:
        # Caller already holds a transaction; reads inside it are consistent.
        yield conn
        return
    conn.execute("BEGIN")
    try:
        yield conn
    finally:
        conn.rollback()


# --- Value conversion ---


def _new_id() -> str:
    return uuid.uuid4().hex


def _dec(value: str | None) -> Decimal | None:
    return Decimal(value) if value is not None else None


def _dec_str(value: Decimal | int | float | str | None) -> str | None:
    if value is None:
        return None
    return str(Decimal(str(value)))


def _ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _row_to_organization(row: sqlite3.Row) -> Organization:
    return Organization(id=row["id"], name=row["name"])


def _row_to_client(row: sqlite3.Row, prefix: str = "") -> Client:
    return Client(
        id=row[f"{prefix}id"],
        name=row[f"{prefix}name"],
        organization_id=row[f"{prefix}organization_id"],
        hourly_rate=_dec(row[f"{prefix}hourly_rate"]),
        company=row[f"{prefix}company"],
        email=row[f"{prefix}email"],
        address=row[f"{prefix}address"],
        deleted_at=_ts(row[f"{prefix}deleted_at"]),
    )


def _row_to_invoice(row: sqlite3.Row, prefix: str = "") -> Invoice:
    return Invoice(
        id=row[f"{prefix}id"],
        number=row[f"{prefix}number"],
        client_id=row[f"{prefix}client_id"],
        created_at=datetime.fromisoformat(row[f"{prefix}created_at"]),
        due_date=date.fromisoformat(row[f"{prefix}due_date"][:10]),
        tax=_dec(row[f"{prefix}tax"]),
        discount=_dec(row[f"{prefix}discount"]),
        paid_at=_ts(row[f"{prefix}paid_at"]),
        notes=row[f"{prefix}notes"],
    )


def _row_to_time_entry(row: sqlite3.Row) -> TimeEntry:
    return TimeEntry(
        id=row["id"],
        start=datetime.fromisoformat(row["start_time"]),
        end=_ts(row["end_time"]),
        hourly_rate=_dec(row["hourly_rate"]),
        description=row["description"],
        client_id=row["client_id"],
        invoice_id=row["invoice_id"],
    )


# --- Writes ---


def create_organization(conn: sqlite3.Connection, name: str, org_id: str | None = None) -> str:
    org_id = org_id or _new_id()
    conn.execute("INSERT INTO organizations (id, name) VALUES (?, ?)", (org_id, name))
    return org_id


def create_client(
    conn: sqlite3.Connection,
    organization_id: str,
    name: str,
    hourly_rate: Decimal | int | float | str | None = None,
    company: str = "",
    email: str = "",
    address: str = "",
    client_id: str | None = None,
) -> str:
    """Create a client and return its ID."""
    client_id = client_id or _new_id()
    conn.execute(
        """
        INSERT INTO clients (id, organization_id, name, company, email, address, hourly_rate)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (client_id, organization_id, name, company, email, address, _dec_str(hourly_rate)),
    )
    logger.debug("Created client %s (%s)", client_id, name)
    return client_id


def soft_delete_client(conn: sqlite3.Connection, client_id: str, when: datetime | None = None) -> None:
    conn.execute(
        "UPDATE clients SET deleted_at = ? WHERE id = ?",
        (_iso(when or datetime.now()), client_id),
    )


def create_invoice(
    conn: sqlite3.Connection,
    client_id: str,
    number: str,
    due_date: date,
    created_at: datetime | None = None,
    tax: Decimal | int | float | str | None = None,
    discount: Decimal | int | float | str | None = None,
    notes: str = "",
    entry_ids: list[str] | None = None,
    invoice_id: str | None = None,
) -> str:
    """Create an invoice and attach the given time entries to it.

    Entries already attached to another invoice are left alone; an entry
    belongs to at most one invoice.
    """
    invoice_id = invoice_id or _new_id()
    conn.execute(
        """
        INSERT INTO invoices (id, number, client_id, created_at, due_date, tax, discount, notes)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            invoice_id,
            number,
            client_id,
            _iso(created_at or datetime.now()),
            _iso(due_date),
            _dec_str(tax),
            _dec_str(discount),
            notes,
        ),
    )
    for entry_id in entry_ids or []:
        cursor = conn.execute(
            "UPDATE time_entries SET invoice_id = ? WHERE id = ? AND invoice_id IS NULL",
            (invoice_id, entry_id),
        )
        if cursor.rowcount == 0:
            logger.warning("Time entry %s not attached to %s (missing or already invoiced)", entry_id, number)
    logger.debug("Created invoice %s (%s) with %d entries", invoice_id, number, len(entry_ids or []))
    return invoice_id


def mark_invoice_paid(conn: sqlite3.Connection, invoice_id: str, paid_at: datetime | None = None) -> None:
    conn.execute(
        "UPDATE invoices SET paid_at = ? WHERE id = ?",
        (_iso(paid_at or datetime.now()), invoice_id),
    )


def create_time_entry(
    conn: sqlite3.Connection,
    start: datetime,
    end: datetime | None = None,
    client_id: str | None = None,
    hourly_rate: Decimal | int | float | str | None = None,
    description: str = "",
    invoice_id: str | None = None,
    entry_id: str | None = None,
) -> str:
    """Create a time entry and return its ID. `end=None` starts a running timer."""
    entry_id = entry_id or _new_id()
    conn.execute(
        """
        INSERT INTO time_entries (id, start_time, end_time, hourly_rate, description, client_id, invoice_id)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (
            entry_id,
            _iso(start),
            _iso(end),
            _dec_str(hourly_rate),
            description,
            client_id,
            invoice_id,
        ),
    )
    return entry_id


# --- Reads ---


def load_invoice_snapshot(conn: sqlite3.Connection, invoice_id: str) -> InvoiceSnapshot:
    """Load an invoice with its client, organization and time entries.

    Soft-deleted clients are included so finalized invoices still render.
    Raises InvoiceNotFoundError if the invoice does not exist.
    """
    with _read_transaction(conn):
        row = conn.execute("SELECT * FROM invoices WHERE id = ?", (invoice_id,)).fetchone()
        if row is None:
            raise InvoiceNotFoundError(invoice_id)
        invoice = _row_to_invoice(row)

        client_row = conn.execute("SELECT * FROM clients WHERE id = ?", (invoice.client_id,)).fetchone()
        if client_row is None:
            raise InvoiceNotFoundError(invoice_id)
        client = _row_to_client(client_row)

        org_row = conn.execute(
            "SELECT * FROM organizations WHERE id = ?", (client.organization_id,),
        ).fetchone()
        if org_row is None:
            raise InvoiceNotFoundError(invoice_id)
        organization = _row_to_organization(org_row)

        entry_rows = conn.execute(
            "SELECT * FROM time_entries WHERE invoice_id = ? ORDER BY start_time, id",
            (invoice_id,),
        ).fetchall()

    return InvoiceSnapshot(
        invoice=invoice,
        client=client,
        organization=organization,
        time_entries=tuple(_row_to_time_entry(r) for r in entry_rows),
    )


_ENTRY_RECORD_SELECT = """
    SELECT te.*,
           c.id AS c_id, c.name AS c_name, c.organization_id AS c_organization_id,
           c.hourly_rate AS c_hourly_rate, c.company AS c_company, c.email AS c_email,
           c.address AS c_address, c.deleted_at AS c_deleted_at,
           i.id AS i_id, i.number AS i_number, i.client_id AS i_client_id,
           i.created_at AS i_created_at, i.due_date AS i_due_date, i.tax AS i_tax,
           i.discount AS i_discount, i.paid_at AS i_paid_at, i.notes AS i_notes
    FROM time_entries te
    JOIN clients c ON c.id = te.client_id
    LEFT JOIN invoices i ON i.id = te.invoice_id
"""


def _row_to_entry_record(row: sqlite3.Row) -> EntryRecord:
    return EntryRecord(
        entry=_row_to_time_entry(row),
        client=_row_to_client(row, prefix="c_"),
        invoice=_row_to_invoice(row, prefix="i_") if row["i_id"] is not None else None,
    )


def list_entry_records(
    conn: sqlite3.Connection,
    organization_id: str,
    client_ids: list[str] | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[EntryRecord]:
    """List time entries of active clients in an organization, newest first.

    Optional filters: client ids, and an inclusive start_time range.
    """
    where = ["c.organization_id = ?", "c.deleted_at IS NULL"]
    params: list = [organization_id]
    if client_ids:
        where.append(f"c.id IN ({', '.join('?' for _ in client_ids)})")
        params.extend(client_ids)
    if start is not None:
        where.append("te.start_time >= ?")
        params.append(_iso(start))
    if end is not None:
        where.append("te.start_time <= ?")
        params.append(_iso(end))

    query = _ENTRY_RECORD_SELECT + " WHERE " + " AND ".join(where) + " ORDER BY te.start_time DESC, te.id"
    with _read_transaction(conn):
        rows = conn.execute(query, params).fetchall()
    return [_row_to_entry_record(r) for r in rows]


def get_running_entry(conn: sqlite3.Connection, organization_id: str) -> TimeEntry | None:
    """Return the in-progress time entry of an organization, if any."""
    row = conn.execute(
        """
        SELECT te.* FROM time_entries te
        JOIN clients c ON c.id = te.client_id
        WHERE te.end_time IS NULL AND c.organization_id = ? AND c.deleted_at IS NULL
        ORDER BY te.start_time DESC
        LIMIT 1
        """,
        (organization_id,),
    ).fetchone()
    return _row_to_time_entry(row) if row else None
