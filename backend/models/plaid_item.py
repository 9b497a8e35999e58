"""PlaidItem model - one linked institution and its sync state."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.orm import relationship

from database import Base
from models.enums import PlaidItemStatus
from models.utils import generate_uuid


class PlaidItem(Base):
    """A Plaid Item representing a linked financial institution.

    Each institution linked via Plaid Link gets its own access_token.
    ``cursor`` is the transactions/sync position; ``None`` means the full
    history has not been fetched yet. Only the sync engine writes
    ``cursor``, ``status`` and ``last_error``.
    """

    __tablename__ = "plaid_items"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    owner_id = Column(String(36), nullable=False, index=True)
    item_id = Column(String, unique=True, index=True, nullable=False)
    access_token = Column(String, nullable=False)
    institution_id = Column(String, nullable=True)
    institution_name = Column(String, nullable=True)
    cursor = Column(Text, nullable=True)
    status = Column(String, nullable=False, default=PlaidItemStatus.OK.value)
    last_error = Column(String, nullable=True)
    last_successful_sync = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    bank_accounts = relationship("BankAccount", back_populates="plaid_item")
