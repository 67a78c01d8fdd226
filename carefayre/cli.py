"""
Care Fayre operator CLI.

Usage:
    carefayre expire-queries [--auto-settle] [--json]
    carefayre reconcile-payments [--job JOB_ID] [--json]
    carefayre lowest-rate REQUEST_ID [--json]

``expire-queries`` is the schedulable deadline sweep; run it from cron.
"""

import argparse
import json
import logging
import os
import sys

from carefayre.config import MarketplaceConfig
from carefayre.errors import MarketplaceError
from carefayre.marketplace import Marketplace
from carefayre.timesheets.expiry import AdvisoryExpiryPolicy, AutoSettleExpiryPolicy
from carefayre.utils import decimal_str

logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)


def cmd_expire_queries(args, market: Marketplace):
    """Run the overdue-query sweep once."""
    report = market.timesheets.expire_overdue_queries()
    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
        return
    if not report.overdue:
        print("No overdue timesheet queries.")
        return
    print(f"Overdue: {len(report.overdue)}")
    for ts_id in report.overdue:
        outcome = report.actions.get(ts_id) or f"skipped ({report.skipped.get(ts_id)})"
        print(f"  {ts_id}: {outcome}")


def cmd_reconcile_payments(args, market: Marketplace):
    """Recompute total_paid_to_date from the payment ledger."""
    job_ids = [args.job] if args.job else [j.id for j in market.storage.list_jobs()]
    totals = {}
    for job_id in job_ids:
        before = market.jobs.get_job(job_id).total_paid_to_date
        after = market.timesheets.reconcile_total_paid(job_id)
        totals[job_id] = {"before": decimal_str(before), "after": decimal_str(after)}

    if args.json:
        print(json.dumps(totals, indent=2))
        return
    drifted = [job_id for job_id, t in totals.items() if t["before"] != t["after"]]
    print(f"Reconciled {len(totals)} jobs, {len(drifted)} corrected")
    for job_id in drifted:
        print(f"  {job_id}: {totals[job_id]['before']} -> {totals[job_id]['after']}")


def cmd_lowest_rate(args, market: Marketplace):
    """Compare the stored lowest bid rate with the live minimum."""
    request = market.bids.get_request(args.request_id)
    live = market.bids.live_lowest_bid_rate(args.request_id)
    result = {
        "request_id": request.id,
        "stored": decimal_str(request.lowest_bid_rate),
        "live": decimal_str(live),
    }
    if args.json:
        print(json.dumps(result, indent=2))
        return
    print(f"Stored lowest rate: {result['stored'] or '-'}")
    print(f"Live lowest rate:   {result['live'] or '-'}")
    if result["stored"] != result["live"]:
        print("(stored value is stale)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="carefayre",
        description="Care Fayre marketplace maintenance",
    )
    parser.add_argument(
        "--db",
        default=os.environ.get("CAREFAYRE_DB_PATH"),
        help="SQLite database path (default: ~/.carefayre/carefayre.db)",
    )
    parser.add_argument("--verbose", "-v", action="store_true")

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_expire = subparsers.add_parser("expire-queries", help="Apply overdue timesheet query deadlines")
    p_expire.add_argument(
        "--auto-settle",
        action="store_true",
        help="Adopt suggested hours and auto-approve resubmissions (default: report only)",
    )
    p_expire.add_argument("--json", "-j", action="store_true")

    p_reconcile = subparsers.add_parser("reconcile-payments", help="Recompute job payment totals")
    p_reconcile.add_argument("--job", help="Only this job")
    p_reconcile.add_argument("--json", "-j", action="store_true")

    p_lowest = subparsers.add_parser("lowest-rate", help="Show stored vs live lowest bid rate")
    p_lowest.add_argument("request_id", help="Care request ID")
    p_lowest.add_argument("--json", "-j", action="store_true")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger("carefayre").setLevel(logging.INFO)

    policy = AutoSettleExpiryPolicy() if getattr(args, "auto_settle", False) else AdvisoryExpiryPolicy()
    try:
        market = Marketplace.sqlite(
            args.db, config=MarketplaceConfig.from_env(), expiry_policy=policy
        )
    except (ValueError, OSError) as e:
        logger.error(f"Failed to open marketplace database: {e}")
        sys.exit(1)

    try:
        if args.command == "expire-queries":
            cmd_expire_queries(args, market)
        elif args.command == "reconcile-payments":
            cmd_reconcile_payments(args, market)
        elif args.command == "lowest-rate":
            cmd_lowest_rate(args, market)
    except MarketplaceError as e:
        logger.error(f"{e}")
        sys.exit(1)
    finally:
        market.storage.close()


if __name__ == "__main__":
    main()
