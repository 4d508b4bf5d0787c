"""CLI interface for hourbill."""

import argparse
import json
import sys
from datetime import datetime
from pathlib import Path

from . import db
from .aggregate import summarize, summarize_by_client
from .config import load_config
from .errors import InvoiceNotFoundError, PipelineError
from .logging_setup import log_timing, setup_logging
from .pipeline import generate_invoice_document
from .render import format_amount


def _format_minutes(minutes) -> str:
    total = int(minutes)
    return f"{total // 60}h {total % 60:02d}m"


def _parse_datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def cmd_init(args):
    """Initialize the database."""
    config = load_config(Path(args.config) if args.config else None)
    config.db_path.parent.mkdir(parents=True, exist_ok=True)
    db.init_db(config.db_path)
    print(f"Database initialized at {config.db_path}")


def cmd_generate(args):
    """Generate and store the PDF for an invoice."""
    config = load_config(Path(args.config) if args.config else None)
    try:
        result = generate_invoice_document(config, args.invoice_id, on_timing=log_timing)
    except PipelineError as e:
        if isinstance(e.__cause__, InvoiceNotFoundError):
            print(f"Error: invoice not found: {args.invoice_id}", file=sys.stderr)
        else:
            print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    totals = result.totals
    print(f"Stored {result.key} ({result.document.size} bytes)")
    print(f"  Subtotal: {format_amount(totals.subtotal)}")
    if totals.has_tax_line:
        print(f"  Tax:      {format_amount(totals.tax_amount)}")
    if totals.has_discount_line:
        print(f"  Discount: {format_amount(totals.discount)}")
    print(f"  Total:    {format_amount(totals.total)}")


def cmd_summary(args):
    """Show unbilled/billed/paid totals for an organization."""
    config = load_config(Path(args.config) if args.config else None)
    with db.get_db(config.db_path) as conn:
        records = db.list_entry_records(
            conn,
            args.org,
            client_ids=args.client or None,
            start=_parse_datetime(args.date_from),
            end=_parse_datetime(args.date_to),
        )
        running = db.get_running_entry(conn, args.org)

    summary = summarize(records)

    if args.json:
        output = summary.as_dict()
        if args.by_client:
            output["clients"] = {
                client_id: s.as_dict() for client_id, s in summarize_by_client(records).items()
            }
        output["running_entry"] = running.id if running else None
        print(json.dumps(output, indent=2))
        return

    print(f"{'Bucket':<10} {'Time':>10} {'Amount':>14}")
    for bucket in ("unbilled", "billed", "paid"):
        minutes = getattr(summary, f"{bucket}_minutes")
        amount = getattr(summary, f"{bucket}_amount")
        print(f"{bucket:<10} {_format_minutes(minutes):>10} {format_amount(amount):>14}")
    if summary.skipped:
        print(f"Skipped {len(summary.skipped)} invalid entries: {', '.join(summary.skipped)}")
    if running:
        print(f"Timer running since {running.start.isoformat()} ({running.description or 'no description'})")


def main():
    parser = argparse.ArgumentParser(description="hourbill CLI")
    parser.add_argument("-c", "--config", help="Path to config file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init", help="Initialize database")

    generate_parser = subparsers.add_parser("generate", help="Generate and store an invoice PDF")
    generate_parser.add_argument("invoice_id", help="Invoice ID")

    summary_parser = subparsers.add_parser("summary", help="Unbilled/billed/paid totals")
    summary_parser.add_argument("--org", required=True, help="Organization ID")
    summary_parser.add_argument("--client", action="append", help="Client ID (repeatable)")
    summary_parser.add_argument("--from", dest="date_from", help="Start time lower bound (ISO)")
    summary_parser.add_argument("--to", dest="date_to", help="Start time upper bound (ISO)")
    summary_parser.add_argument("--by-client", action="store_true", help="Include per-client totals (JSON)")
    summary_parser.add_argument("--json", action="store_true", help="Output JSON")

    args = parser.parse_args()

    # Load config and setup logging (except for init which doesn't need full config)
    if args.command != "init":
        config = load_config(Path(args.config) if args.config else None)
        setup_logging(config, verbose=args.verbose)

    commands = {
        "init": cmd_init,
        "generate": cmd_generate,
        "summary": cmd_summary,
    }
    commands[args.command](args)


if __name__ == "__main__":
    main()
