"""BankTransaction model - one posted or pending money movement."""

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class BankTransaction(Base):
    """A bank transaction, either synced from Plaid or entered manually.

    ``amount`` is always non-negative; ``type`` (INFLOW/OUTFLOW) carries the
    direction. ``plaid_transaction_id`` is NULL for manual and imported rows
    and unique across the table otherwise.
    """

    __tablename__ = "bank_transactions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    owner_id = Column(String(36), nullable=False, index=True)
    account_id = Column(
        String(36), ForeignKey("bank_accounts.id"), nullable=False, index=True
    )
    plaid_transaction_id = Column(String, unique=True, nullable=True)
    date = Column(Date, nullable=False, index=True)
    description = Column(String, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    type = Column(String, nullable=False)  # "INFLOW" | "OUTFLOW"
    statement_month = Column(Integer, nullable=True)
    statement_year = Column(Integer, nullable=True)
    is_pending = Column(Boolean, default=False, nullable=False)
    merchant_name = Column(String, nullable=True)
    plaid_status = Column(String, nullable=True)  # "pending" | "posted"
    raw_plaid_data = Column(JSON, nullable=True)
    category_id = Column(
        String(36), ForeignKey("transaction_categories.id"), nullable=True, index=True
    )
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    account = relationship("BankAccount", back_populates="transactions")
    category = relationship("TransactionCategory")
