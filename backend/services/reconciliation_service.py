"""Reconciliation engine - applies a fetched delta to the ledger.

One call is one database transaction: mapped additions are inserted (or
merged into matching manual entries), modifications and removals are
applied, and the item's cursor and the account balances are advanced.
Either everything commits or nothing does, so a failed run can simply be
retried from the old cursor.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from config import settings
from integrations.provider_protocol import PlaidTransaction, TransactionDelta
from models import (
    BankAccount,
    BankTransaction,
    PlaidItem,
    PlaidItemStatus,
    TransactionType,
    generate_uuid,
)
from models.utils import utcnow
from services.bank_account_service import BankAccountService
from services.deleted_transaction_service import DeletedTransactionService

logger = logging.getLogger(__name__)

INSERT_CHUNK_SIZE = 500

# Dialects whose INSERT supports ON CONFLICT DO NOTHING ... RETURNING
_CONFLICT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class ReconciliationTimeoutError(Exception):
    """The reconciliation ran past its time budget."""


class UnsupportedDialectError(Exception):
    """The database cannot skip duplicate rows on insert."""


def conflict_ignoring_insert(dialect_name: str):
    """Return the dialect's ``insert`` construct that has ``on_conflict_do_nothing``.

    Raises:
        UnsupportedDialectError: For databases other than PostgreSQL and SQLite.
    """
    try:
        return _CONFLICT_INSERTS[dialect_name]
    except KeyError:
        raise UnsupportedDialectError(
            f"Database dialect {dialect_name!r} is not supported; "
            f"use one of: {', '.join(sorted(_CONFLICT_INSERTS))}"
        ) from None


@dataclass
class ReconcileResult:
    """Counts from one reconciliation; ``error`` is set when it rolled back."""

    added: int = 0
    modified: int = 0
    removed: int = 0
    merged: int = 0
    inserted_plaid_ids: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def to_ledger_amount(raw_amount: Decimal) -> tuple[Decimal, str]:
    """Split a provider amount into a non-negative amount and a direction.

    Plaid reports money leaving the account as positive.
    """
    direction = TransactionType.INFLOW if raw_amount < 0 else TransactionType.OUTFLOW
    return abs(raw_amount), direction.value


def map_transaction_fields(txn: PlaidTransaction) -> dict:
    """Ledger column values derived from a provider transaction."""
    amount, direction = to_ledger_amount(txn.amount)
    return {
        "date": txn.date,
        "description": txn.name or txn.merchant_name or "Unknown",
        "amount": amount,
        "type": direction,
        "statement_month": txn.date.month,
        "statement_year": txn.date.year,
        "is_pending": txn.pending,
        "merchant_name": txn.merchant_name,
        "plaid_status": "pending" if txn.pending else "posted",
        "raw_plaid_data": txn.raw_data,
    }


class ReconciliationService:
    """Applies a TransactionDelta for one PlaidItem atomically."""

    def __init__(
        self,
        timeout_seconds: float | None = None,
        merge_window_days: int | None = None,
    ):
        self._timeout_seconds = (
            timeout_seconds if timeout_seconds is not None
            else settings.SYNC_TRANSACTION_TIMEOUT_SECONDS
        )
        self._merge_window_days = (
            merge_window_days if merge_window_days is not None
            else settings.SYNC_MERGE_WINDOW_DAYS
        )

    def reconcile(
        self,
        db: Session,
        owner_id: str,
        plaid_item: PlaidItem,
        delta: TransactionDelta,
        balances: dict[str, Decimal | None],
    ) -> ReconcileResult:
        """Apply ``delta`` and ``balances`` for ``plaid_item`` and commit.

        On any failure (including the time budget) the transaction is rolled
        back, nothing is written and the returned result carries ``error``.
        """
        deadline = time.monotonic() + self._timeout_seconds
        try:
            result = self._apply(db, owner_id, plaid_item, delta, balances, deadline)
            self._check_deadline(deadline, "commit")
            db.commit()
        except ReconciliationTimeoutError as e:
            db.rollback()
            logger.error("Reconciliation for Plaid item %s rolled back: %s", plaid_item.id, e)
            return ReconcileResult(error=str(e))
        except Exception as e:
            # Safety net: anything raised inside the unit rolls it back.
            db.rollback()
            logger.exception("Reconciliation for Plaid item %s failed", plaid_item.id)
            return ReconcileResult(error=f"Reconciliation failed: {e}")

        logger.info(
            "Reconciled Plaid item %s: %d added, %d merged, %d modified, %d removed",
            plaid_item.id, result.added, result.merged, result.modified, result.removed,
        )
        return result

    def _check_deadline(self, deadline: float, step: str) -> None:
        if time.monotonic() > deadline:
            raise ReconciliationTimeoutError(
                f"Exceeded {self._timeout_seconds:g}s budget before {step}"
            )

    def _apply(
        self,
        db: Session,
        owner_id: str,
        plaid_item: PlaidItem,
        delta: TransactionDelta,
        balances: dict[str, Decimal | None],
        deadline: float,
    ) -> ReconcileResult:
        result = ReconcileResult()
        accounts = (
            db.query(BankAccount)
            .filter(BankAccount.plaid_item_id == plaid_item.id)
            .all()
        )
        account_map = {a.plaid_account_id: a.id for a in accounts if a.plaid_account_id}

        # 1. Map additions onto local accounts
        additions = self._map_additions(owner_id, delta.added, account_map)
        self._check_deadline(deadline, "tombstone filter")

        # 2. Drop transactions the user deleted
        deleted = DeletedTransactionService.find_deleted_ids(db, owner_id, list(additions))
        if deleted:
            logger.info("Skipping %d previously deleted transaction(s)", len(deleted))
            for plaid_id in deleted:
                additions.pop(plaid_id, None)

        # Already-stored ids are neither merged nor re-inserted
        if additions:
            present = {
                row[0]
                for row in db.query(BankTransaction.plaid_transaction_id)
                .filter(BankTransaction.plaid_transaction_id.in_(list(additions)))
                .all()
            }
            for plaid_id in present:
                additions.pop(plaid_id, None)
        self._check_deadline(deadline, "merge")

        # 2b. Adopt matching manual entries
        result.merged = self._merge_manual_entries(db, owner_id, additions)
        self._check_deadline(deadline, "insert")

        # 3. Insert the rest
        result.inserted_plaid_ids = self._insert(db, list(additions.values()))
        result.added = len(result.inserted_plaid_ids)
        self._check_deadline(deadline, "modifications")

        # 4. Modifications
        result.modified = self._apply_modifications(db, owner_id, delta.modified)
        self._check_deadline(deadline, "removals")

        # 5. Removals
        if delta.removed:
            result.removed = (
                db.query(BankTransaction)
                .filter(
                    BankTransaction.owner_id == owner_id,
                    BankTransaction.plaid_transaction_id.in_(delta.removed),
                )
                .delete(synchronize_session=False)
            )
        self._check_deadline(deadline, "cursor update")

        # 6. Advance the item
        now = utcnow()
        plaid_item.cursor = delta.next_cursor
        plaid_item.last_successful_sync = now
        plaid_item.status = PlaidItemStatus.OK.value
        plaid_item.last_error = None
        if accounts:
            db.execute(update(BankAccount), [
                {"id": a.id, "last_synced_at": now} for a in accounts
            ])
        self._check_deadline(deadline, "balances")

        # 7. Balances
        BankAccountService.apply_balances(db, accounts, balances)
        db.flush()
        return result

    def _map_additions(
        self,
        owner_id: str,
        added: list[PlaidTransaction],
        account_map: dict[str, str],
    ) -> dict[str, dict]:
        """Build insert rows keyed by Plaid id, dropping unmapped accounts."""
        rows: dict[str, dict] = {}
        unmapped = 0
        for txn in added:
            account_id = account_map.get(txn.account_id)
            if account_id is None:
                unmapped += 1
                continue
            row = map_transaction_fields(txn)
            row.update({
                "owner_id": owner_id,
                "account_id": account_id,
                "plaid_transaction_id": txn.transaction_id,
            })
            rows[txn.transaction_id] = row

        if unmapped:
            logger.warning(
                "Skipping %d added transaction(s) for accounts not linked locally", unmapped
            )
        return rows

    def _merge_manual_entries(self, db: Session, owner_id: str, additions: dict[str, dict]) -> int:
        """Link additions to manual entries recorded before the bank posted them.

        A manual row matches when account, amount and direction are equal
        and its date is within the merge window; the closest date wins,
        then the oldest entry. A window of 0 turns merging off. Matched
        additions are removed from
        ``additions``. The manual row keeps its notes and category.
        """
        if not additions or self._merge_window_days <= 0:
            return 0

        window = self._merge_window_days
        dates = [row["date"] for row in additions.values()]
        date_min = date.fromordinal(min(dates).toordinal() - window)
        date_max = date.fromordinal(max(dates).toordinal() + window)
        account_ids = {row["account_id"] for row in additions.values()}

        candidates = (
            db.query(
                BankTransaction.id,
                BankTransaction.account_id,
                BankTransaction.amount,
                BankTransaction.type,
                BankTransaction.date,
                BankTransaction.created_at,
            )
            .filter(
                BankTransaction.owner_id == owner_id,
                BankTransaction.account_id.in_(account_ids),
                BankTransaction.plaid_transaction_id.is_(None),
                BankTransaction.date >= date_min,
                BankTransaction.date <= date_max,
            )
            .all()
        )
        if not candidates:
            return 0

        by_key: dict[tuple, list] = {}
        for c in candidates:
            by_key.setdefault((c.account_id, Decimal(c.amount), c.type), []).append(c)

        claimed: set[str] = set()
        merges = []
        for plaid_id, row in list(additions.items()):
            options = [
                c for c in by_key.get((row["account_id"], row["amount"], row["type"]), [])
                if c.id not in claimed and abs((c.date - row["date"]).days) <= window
            ]
            if not options:
                continue
            best = min(
                options,
                key=lambda c: (abs((c.date - row["date"]).days), c.created_at or datetime.min),
            )
            claimed.add(best.id)
            merge = {
                key: row[key]
                for key in (
                    "plaid_transaction_id", "raw_plaid_data", "plaid_status",
                    "is_pending", "description", "merchant_name", "date",
                    "statement_month", "statement_year",
                )
            }
            merge.update({"id": best.id, "updated_at": utcnow()})
            merges.append(merge)
            del additions[plaid_id]

        if merges:
            db.execute(update(BankTransaction), merges)
            logger.info("Merged %d Plaid transaction(s) into manual entries", len(merges))
        return len(merges)

    def _insert(self, db: Session, rows: list[dict]) -> list[str]:
        """Insert rows, ignoring any whose Plaid id already exists.

        Returns:
            Plaid ids of the rows actually inserted.
        """
        if not rows:
            return []

        insert = conflict_ignoring_insert(db.get_bind().dialect.name)
        now = utcnow()
        inserted: list[str] = []
        for start in range(0, len(rows), INSERT_CHUNK_SIZE):
            chunk = [
                {**row, "id": generate_uuid(), "created_at": now, "updated_at": now}
                for row in rows[start:start + INSERT_CHUNK_SIZE]
            ]
            stmt = (
                insert(BankTransaction)
                .values(chunk)
                .on_conflict_do_nothing(index_elements=["plaid_transaction_id"])
                .returning(BankTransaction.plaid_transaction_id)
            )
            inserted.extend(db.execute(stmt).scalars().all())

        skipped = len(rows) - len(inserted)
        if skipped:
            logger.info("Skipped %d duplicate transaction(s) on insert", skipped)
        return inserted

    def _apply_modifications(
        self,
        db: Session,
        owner_id: str,
        modified: list[PlaidTransaction],
    ) -> int:
        """Update stored rows for modified transactions.

        Tombstoned ids and ids with no stored row are skipped. The account
        a row belongs to is never changed.
        """
        by_plaid_id = {txn.transaction_id: txn for txn in modified}
        if not by_plaid_id:
            return 0

        tombstoned = DeletedTransactionService.find_deleted_ids(db, owner_id, list(by_plaid_id))
        wanted = [pid for pid in by_plaid_id if pid not in tombstoned]
        if not wanted:
            return 0

        existing = (
            db.query(BankTransaction.id, BankTransaction.plaid_transaction_id)
            .filter(
                BankTransaction.owner_id == owner_id,
                BankTransaction.plaid_transaction_id.in_(wanted),
            )
            .all()
        )
        now = utcnow()
        updates = []
        for row_id, plaid_id in existing:
            values = map_transaction_fields(by_plaid_id[plaid_id])
            values.update({"id": row_id, "updated_at": now})
            updates.append(values)

        if updates:
            db.execute(update(BankTransaction), updates)
        missing = len(wanted) - len(updates)
        if missing:
            logger.debug("Skipped %d modified transaction(s) with no stored row", missing)
        return len(updates)
