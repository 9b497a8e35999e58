"""Transaction service - user-initiated deletes."""

import logging

from sqlalchemy.orm import Session

from models import BankTransaction
from services.deleted_transaction_service import DeletedTransactionService

logger = logging.getLogger(__name__)


class TransactionService:
    """Operations on an owner's bank transactions."""

    @staticmethod
    def delete_transactions(db: Session, owner_id: str, transaction_ids: list[str]) -> int:
        """Delete the owner's transactions with the given ids.

        Plaid-sourced rows are tombstoned in the same unit of work so the
        next sync does not bring them back. Ids that do not exist or belong
        to another owner are ignored. Does not commit.

        Returns:
            Number of transactions deleted.
        """
        if not transaction_ids:
            return 0

        transactions = (
            db.query(BankTransaction)
            .filter(
                BankTransaction.owner_id == owner_id,
                BankTransaction.id.in_(transaction_ids),
            )
            .all()
        )
        if not transactions:
            return 0

        DeletedTransactionService.record(db, owner_id, transactions)
        deleted = (
            db.query(BankTransaction)
            .filter(BankTransaction.id.in_([t.id for t in transactions]))
            .delete(synchronize_session=False)
        )
        db.flush()
        logger.info("Deleted %d transaction(s) for owner %s", deleted, owner_id)
        return deleted
