"""Financial aggregation over a window of time entries.

Pure functions, no I/O. Each finished entry lands in exactly one bucket:

    no invoice               -> unbilled
    invoice, not yet paid    -> billed
    invoice, paid            -> paid

Running entries (no end time) contribute nothing to any bucket. Amounts are
summed at full precision; rounding is left to presentation.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Iterable

from .errors import InvalidTimeEntryError
from .models import Client, EntryRecord, TimeEntry

logger = logging.getLogger("hourbill.aggregate")

ZERO = Decimal(0)
SIXTY = Decimal(60)


class Bucket(Enum):
    UNBILLED = "unbilled"
    BILLED = "billed"
    PAID = "paid"


@dataclass
class FinancialSummary:
    unbilled_minutes: Decimal = ZERO
    unbilled_amount: Decimal = ZERO
    billed_minutes: Decimal = ZERO
    billed_amount: Decimal = ZERO
    paid_minutes: Decimal = ZERO
    paid_amount: Decimal = ZERO
    skipped: list[str] = field(default_factory=list)  # ids of rejected entries

    @property
    def total_minutes(self) -> Decimal:
        return self.unbilled_minutes + self.billed_minutes + self.paid_minutes

    @property
    def total_amount(self) -> Decimal:
        return self.unbilled_amount + self.billed_amount + self.paid_amount

    def add(self, bucket: Bucket, minutes: Decimal, amount: Decimal) -> None:
        prefix = bucket.value
        setattr(self, f"{prefix}_minutes", getattr(self, f"{prefix}_minutes") + minutes)
        setattr(self, f"{prefix}_amount", getattr(self, f"{prefix}_amount") + amount)

    def as_dict(self) -> dict[str, str]:
        return {
            "unbilled_minutes": str(self.unbilled_minutes),
            "unbilled_amount": str(self.unbilled_amount),
            "billed_minutes": str(self.billed_minutes),
            "billed_amount": str(self.billed_amount),
            "paid_minutes": str(self.paid_minutes),
            "paid_amount": str(self.paid_amount),
        }


def effective_rate(entry: TimeEntry, client: Client | None) -> Decimal:
    """Resolve the hourly rate: entry override > client default > zero."""
    if entry.hourly_rate is not None:
        return entry.hourly_rate
    if client is not None and client.hourly_rate is not None:
        return client.hourly_rate
    return ZERO


def entry_minutes(entry: TimeEntry) -> Decimal | None:
    """Duration of a finished entry in minutes, or None while it is running.

    Raises InvalidTimeEntryError when the entry ends before it starts.
    """
    if entry.end is None:
        return None
    seconds = Decimal(str((entry.end - entry.start).total_seconds()))
    if seconds < 0:
        raise InvalidTimeEntryError(entry.id)
    return seconds / SIXTY


def bucket_for(record: EntryRecord) -> Bucket:
    if record.invoice is None:
        return Bucket.UNBILLED
    if record.invoice.paid_at is None:
        return Bucket.BILLED
    return Bucket.PAID


def summarize(records: Iterable[EntryRecord]) -> FinancialSummary:
    """Bucket minutes and amounts across a window of entries.

    Never raises: running entries contribute zero, and entries that end
    before they start are left out and recorded in `skipped`.
    """
    summary = FinancialSummary()
    for record in records:
        try:
            minutes = entry_minutes(record.entry)
        except InvalidTimeEntryError:
            logger.warning("Skipping time entry %s: ends before it starts", record.entry.id)
            summary.skipped.append(record.entry.id)
            continue
        if minutes is None:
            continue

        rate = effective_rate(record.entry, record.client)
        summary.add(bucket_for(record), minutes, minutes / SIXTY * rate)

    return summary


def summarize_by_client(records: Iterable[EntryRecord]) -> dict[str | None, FinancialSummary]:
    """Per-client summaries keyed by client id (None for entries without a client)."""
    grouped: dict[str | None, list[EntryRecord]] = {}
    for record in records:
        key = record.client.id if record.client else None
        grouped.setdefault(key, []).append(record)
    return {key: summarize(group) for key, group in grouped.items()}
