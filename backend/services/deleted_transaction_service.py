"""Deleted-transaction registry.

Plaid keeps offering a transaction as "added" until it disappears on the
bank side, so a row the user deleted locally would come straight back on
the next sync. Tombstones remember those ids per owner.
"""

import logging
from typing import Iterable

from sqlalchemy.orm import Session

from models import BankTransaction, DeletedPlaidTransaction

logger = logging.getLogger(__name__)


class DeletedTransactionService:
    """Records and looks up tombstoned Plaid transaction ids."""

    @staticmethod
    def record(
        db: Session,
        owner_id: str,
        transactions: Iterable[BankTransaction],
    ) -> int:
        """Write a tombstone for every Plaid-sourced transaction given.

        Manual rows (no ``plaid_transaction_id``) are ignored, as are ids
        that are already tombstoned. Does not commit; callers delete the
        transactions in the same unit of work.

        Returns:
            Number of tombstones created.
        """
        payloads: dict[str, dict | None] = {}
        for txn in transactions:
            if txn.plaid_transaction_id:
                payloads[txn.plaid_transaction_id] = txn.raw_plaid_data

        if not payloads:
            return 0

        existing = DeletedTransactionService.find_deleted_ids(
            db, owner_id, list(payloads)
        )
        created = 0
        for plaid_id, raw in payloads.items():
            if plaid_id in existing:
                continue
            db.add(DeletedPlaidTransaction(
                owner_id=owner_id,
                plaid_transaction_id=plaid_id,
                transaction_data=raw,
            ))
            created += 1

        db.flush()
        if created:
            logger.info("Recorded %d deleted Plaid transaction(s) for owner %s", created, owner_id)
        return created

    @staticmethod
    def find_deleted_ids(db: Session, owner_id: str, plaid_ids: list[str]) -> set[str]:
        """Return the subset of ``plaid_ids`` the owner has deleted."""
        if not plaid_ids:
            return set()
        rows = (
            db.query(DeletedPlaidTransaction.plaid_transaction_id)
            .filter(
                DeletedPlaidTransaction.owner_id == owner_id,
                DeletedPlaidTransaction.plaid_transaction_id.in_(plaid_ids),
            )
            .all()
        )
        return {row[0] for row in rows}
