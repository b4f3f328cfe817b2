"""
Command-line entry point.

    reconcile upload march.csv [--replace] [--confirm "MERCHANT"] [--by ops]
    reconcile summary [--month 2024-03] [--output partners.csv]

Logging is configured from LOG_LEVEL / LOG_FILE before any command runs.
"""

import argparse
import logging
import sys
from typing import List, Optional

import config
from exceptions import DuplicateMonthError, ReconciliationError
from exports import export_to_csv, summary_dataframe
from models import ALL_TIME
from revenue import load_revenue_summary
from store import get_store
from uploads import UploadManager
from utils import format_amount, setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="reconcile", description="Partner revenue reconciliation")
    commands = parser.add_subparsers(dest="command", required=True)

    upload = commands.add_parser("upload", help="Upload a monthly payment export")
    upload.add_argument("path", help="CSV export to upload")
    upload.add_argument("--replace", action="store_true", help="Replace an existing upload for the month")
    upload.add_argument("--confirm", action="append", default=[], metavar="MERCHANT",
                        help="Accept the proposed partner for this raw merchant (repeatable)")
    upload.add_argument("--by", default="", help="Name recorded as the uploader")

    summary = commands.add_parser("summary", help="Show attributed revenue per partner")
    summary.add_argument("--month", default=ALL_TIME, help="Month key such as 2024-03, or 'all'")
    summary.add_argument("--output", help="Write the partner table to this CSV file")
    return parser


def run_upload(store, args) -> int:
    manager = UploadManager(store)
    with open(args.path, "rb") as f:
        preview = manager.prepare(f.read(), args.path)

    for merchant in args.confirm:
        manager.confirm_match(preview, merchant)
    for match in preview.pending_matches:
        print(f"Unreviewed: {match.merchant_name} -> {match.partner.name} ({match.score})")

    if preview.has_conflict:
        if not args.replace:
            raise DuplicateMonthError(preview.month, preview.existing_upload.id)
        manager.replace_existing(preview)

    result = manager.commit(preview, uploaded_by=args.by)
    print(
        f"Uploaded {result.committed} transactions for {preview.month} "
        f"({result.matched_count} attributed, {result.unmatched_count} unmatched, "
        f"{result.new_aliases} new aliases)"
    )
    return 0


def run_summary(store, args) -> int:
    summary = load_revenue_summary(store, month=args.month)
    print(f"Revenue: {format_amount(summary.total_revenue)}")
    print(f"Commission: {format_amount(summary.total_commission)}")
    print(f"Active partners: {summary.active_partners}")
    print(f"Discovery merchants: {len(summary.discovery)}")

    if args.output:
        with open(args.output, "wb") as f:
            f.write(export_to_csv(summary_dataframe(summary), args.output))
        print(f"Wrote {args.output}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    setup_logging(config.LOG_LEVEL, config.LOG_FILE)
    args = build_parser().parse_args(argv)

    store = get_store()
    try:
        if args.command == "upload":
            return run_upload(store, args)
        return run_summary(store, args)
    except ReconciliationError as e:
        logger.error(f"{args.command} failed: {e.message}")
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
