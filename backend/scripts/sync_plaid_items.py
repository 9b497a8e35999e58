#!/usr/bin/env python
"""Run bank syncs from the command line.

Syncs every linked Plaid item (or a single one) without the per-owner
cooldown the HTTP endpoint applies. Meant for cron jobs and for
troubleshooting a misbehaving connection.

Usage:
    python -m scripts.sync_plaid_items --list
    python -m scripts.sync_plaid_items
    python -m scripts.sync_plaid_items --item <plaid_item_id> --refresh
"""

import argparse
import sys

from sqlalchemy.orm import Session

from database import get_session_local
from logging_config import setup_logging
from models import PlaidItem
from services.sync_service import BankSyncOutcome, SyncService


def print_items(db: Session) -> None:
    """Print one line per linked item."""
    items = db.query(PlaidItem).order_by(PlaidItem.created_at).all()
    if not items:
        print("No linked Plaid items.")
        return
    for item in items:
        last = item.last_successful_sync.isoformat() if item.last_successful_sync else "never"
        print(
            f"  {item.id}  {item.institution_name or '(unknown)':<30} "
            f"owner={item.owner_id}  status={item.status}  last sync={last}"
        )
        if item.last_error:
            print(f"      last error: {item.last_error}")


def print_outcome(outcome: BankSyncOutcome) -> None:
    if outcome.ok:
        c = outcome.counts
        if c.skipped:
            print(f"  {outcome.plaid_item_id}: skipped (sync already running)")
            return
        print(
            f"  {outcome.plaid_item_id}: {c.added} added, {c.merged} merged, "
            f"{c.modified} modified, {c.removed} removed, {c.categorized} categorized"
        )
        if c.refresh_failed:
            print("      refresh request failed; synced whatever Plaid had")
    else:
        f = outcome.failure
        code = f" [{f.error_code}]" if f.error_code else ""
        print(f"  {outcome.plaid_item_id}: FAILED {f.kind.value}{code}: {f.message}")


def run_sync(
    db: Session,
    service: SyncService,
    plaid_item_id: str | None = None,
    refresh: bool | None = None,
) -> list[BankSyncOutcome]:
    """Sync one item, or all of them when ``plaid_item_id`` is None."""
    if plaid_item_id is None:
        return service.sync_all_items(db, refresh=refresh)

    item = db.get(PlaidItem, plaid_item_id)
    if item is None:
        print(f"Error: Plaid item '{plaid_item_id}' not found")
        sys.exit(1)
    return [
        service.sync_item(
            db, item.owner_id, item.id, enforce_rate_limit=False, refresh=refresh
        )
    ]


def main(argv: list[str] | None = None) -> None:
    """Entry point: parse args and run the sync."""
    parser = argparse.ArgumentParser(description="Sync linked Plaid items.")
    parser.add_argument("--list", action="store_true", help="List linked items and exit")
    parser.add_argument("--item", metavar="ID", help="Sync only this Plaid item")
    parser.add_argument(
        "--refresh",
        action="store_true",
        default=None,
        help="Ask Plaid to refresh transactions before syncing",
    )
    args = parser.parse_args(argv)

    setup_logging()

    SessionLocal = get_session_local()
    db = SessionLocal()
    try:
        if args.list:
            print_items(db)
            return

        outcomes = run_sync(db, SyncService(), args.item, args.refresh)
        for outcome in outcomes:
            print_outcome(outcome)

        failed = sum(1 for o in outcomes if not o.ok)
        print(f"\n{len(outcomes)} item(s) synced, {failed} failed")
        if failed:
            sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
