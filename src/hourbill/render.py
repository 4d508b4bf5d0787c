"""Presentation model and template rendering for invoice documents.

Numbers and dates are formatted here, once, after all arithmetic is done.
Templates are rendered in a sandboxed, autoescaping Jinja2 environment against
a model made only of dicts, lists and strings, so invoice content (client
names, descriptions) is always data and never template code. Missing keys
render as empty strings.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path

from jinja2 import ChainableUndefined
from jinja2.sandbox import ImmutableSandboxedEnvironment

from .config import TemplatesConfig
from .models import InvoiceSnapshot
from .totals import InvoiceTotals

logger = logging.getLogger("hourbill.render")

TEMPLATES_DIR = Path(__file__).parent / "templates"

# Chromium resolves pageNumber/totalPages spans in header and footer templates.
DEFAULT_FOOTER = """\
<div style="text-align: right; width: 100%; font-size: 8px;">
    <span style="margin-right: 1cm">
        <span class="pageNumber"></span> of <span class="totalPages"></span>
    </span>
</div>
"""

_MONTHS = (
    "January", "February", "March", "April", "May", "June", "July",
    "August", "September", "October", "November", "December",
)

_CENT = Decimal("0.01")

_env = ImmutableSandboxedEnvironment(
    autoescape=True,
    undefined=ChainableUndefined,
    keep_trailing_newline=True,
)


@dataclass(frozen=True)
class TemplateSet:
    body: str
    header: str
    footer: str = DEFAULT_FOOTER


@dataclass(frozen=True)
class RenderedInvoice:
    body: str
    header: str
    footer: str


def format_amount(amount: Decimal) -> str:
    """Two fraction digits with thousands grouping: 1234.5 -> '1,234.50'."""
    return f"{amount.quantize(_CENT, rounding=ROUND_HALF_UP):,.2f}"


def format_hours(hours: Decimal) -> str:
    return f"{hours.quantize(_CENT, rounding=ROUND_HALF_UP):.2f}"


def format_long_date(value: date) -> str:
    """Locale-independent long date: 'March 5, 2024'."""
    return f"{_MONTHS[value.month - 1]} {value.day}, {value.year}"


def format_percent(rate: Decimal) -> str:
    """Fractional rate as a percentage without trailing zeros: 0.075 -> '7.5'."""
    pct = (rate * 100).normalize()
    return f"{pct:f}"


def build_invoice_model(snapshot: InvoiceSnapshot, totals: InvoiceTotals) -> dict:
    """Build the template model. Every leaf value is a preformatted string."""
    invoice = snapshot.invoice
    client = snapshot.client

    line_items = [
        {
            "date": format_long_date(item.date),
            "description": item.entry.description,
            "hours": format_hours(item.hours),
            "rate": format_amount(item.rate),
            "amount": format_amount(item.amount),
        }
        for item in totals.line_items
    ]

    return {
        "invoice": {
            "id": invoice.id,
            "number": invoice.number,
            "notes": invoice.notes,
            "created_at": format_long_date(invoice.created_at),
            "due_date": format_long_date(invoice.due_date),
            "time_entries": line_items,
            "total_hours": format_hours(totals.total_hours),
            "subtotal": format_amount(totals.subtotal),
            "tax_rate": format_percent(invoice.tax) if totals.has_tax_line and invoice.tax else "",
            "tax_amount": format_amount(totals.tax_amount) if totals.has_tax_line else "",
            "discount": format_amount(totals.discount) if totals.has_discount_line else "",
            "total": format_amount(totals.total),
        },
        "client": {
            "name": client.name,
            "company": client.company,
            "email": client.email,
            "address": client.address,
        },
        "organization": {
            "name": snapshot.organization.name,
        },
    }


def _read_template(path: str, default: Path) -> str:
    template_path = Path(path) if path else default
    return template_path.read_text(encoding="utf-8")


def load_templates(config: TemplatesConfig) -> TemplateSet:
    """Load body/header/footer templates; empty config paths use the bundled ones."""
    body = _read_template(config.body, TEMPLATES_DIR / "body.html")
    header = _read_template(config.header, TEMPLATES_DIR / "header.html")
    if config.footer_inline:
        footer = config.footer_inline
    elif config.footer:
        footer = Path(config.footer).read_text(encoding="utf-8")
    else:
        footer = DEFAULT_FOOTER
    return TemplateSet(body=body, header=header, footer=footer)


def render_template(source: str, model: dict) -> str:
    return _env.from_string(source).render(model)


def render_invoice(model: dict, templates: TemplateSet) -> RenderedInvoice:
    rendered = RenderedInvoice(
        body=render_template(templates.body, model),
        header=render_template(templates.header, model),
        footer=render_template(templates.footer, model),
    )
    logger.debug("Rendered invoice markup (%d bytes body)", len(rendered.body))
    return rendered
