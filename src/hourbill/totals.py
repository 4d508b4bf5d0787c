"""Invoice line items and totals.

    subtotal   = sum(hours * effective rate)
    tax_amount = subtotal * tax          (0 when tax is absent or zero)
    total      = subtotal + tax_amount - discount

Every entry attached to the invoice is listed; running entries appear as
zero-hour lines. All values stay Decimal at full precision.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from .aggregate import SIXTY, ZERO, effective_rate, entry_minutes
from .models import InvoiceSnapshot, TimeEntry


@dataclass(frozen=True)
class LineItem:
    entry: TimeEntry
    date: date
    hours: Decimal
    rate: Decimal
    amount: Decimal


@dataclass(frozen=True)
class InvoiceTotals:
    line_items: tuple[LineItem, ...]
    subtotal: Decimal
    tax_amount: Decimal
    discount: Decimal
    total: Decimal

    @property
    def has_tax_line(self) -> bool:
        return self.tax_amount != ZERO

    @property
    def has_discount_line(self) -> bool:
        return self.discount > ZERO

    @property
    def total_hours(self) -> Decimal:
        return sum((item.hours for item in self.line_items), ZERO)


def build_line_item(entry: TimeEntry, snapshot: InvoiceSnapshot) -> LineItem:
    minutes = entry_minutes(entry)
    hours = minutes / SIXTY if minutes is not None else ZERO
    rate = effective_rate(entry, snapshot.client)
    return LineItem(
        entry=entry,
        date=entry.start.date(),
        hours=hours,
        rate=rate,
        amount=hours * rate,
    )


def compute_invoice_totals(snapshot: InvoiceSnapshot) -> InvoiceTotals:
    """Compute line items and totals for one invoice.

    Raises InvalidTimeEntryError if an attached entry ends before it starts.
    """
    items = tuple(build_line_item(entry, snapshot) for entry in snapshot.time_entries)
    subtotal = sum((item.amount for item in items), ZERO)

    tax = snapshot.invoice.tax
    tax_amount = subtotal * tax if tax else ZERO

    discount = snapshot.invoice.discount
    if discount is None or discount <= ZERO:
        discount = ZERO

    return InvoiceTotals(
        line_items=items,
        subtotal=subtotal,
        tax_amount=tax_amount,
        discount=discount,
        total=subtotal + tax_amount - discount,
    )
