"""DeletedPlaidTransaction model - tombstone for user-deleted Plaid rows."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, String, UniqueConstraint

from database import Base
from models.utils import generate_uuid


class DeletedPlaidTransaction(Base):
    """Marks a Plaid transaction id the user deleted.

    Plaid has no notion of a user-side delete and keeps offering the same
    transaction as "added", so the sync engine filters against these rows.
    Tombstones never expire.
    """

    __tablename__ = "deleted_plaid_transactions"
    __table_args__ = (
        UniqueConstraint(
            "owner_id", "plaid_transaction_id", name="uix_deleted_owner_plaid_txn"
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    owner_id = Column(String(36), nullable=False)
    plaid_transaction_id = Column(String, nullable=False)
    transaction_data = Column(JSON, nullable=True)  # raw Plaid payload at deletion
    deleted_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
