"""BankAccount model - a checking, savings or credit account."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base
from models.enums import BankAccountType
from models.utils import generate_uuid


class BankAccount(Base):
    """A bank or credit account, optionally bound to a Plaid account.

    Manually tracked accounts have no ``plaid_item_id``. Within one
    PlaidItem a ``plaid_account_id`` maps to at most one BankAccount.
    """

    __tablename__ = "bank_accounts"
    __table_args__ = (
        UniqueConstraint(
            "plaid_item_id", "plaid_account_id", name="uix_item_plaid_account"
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    owner_id = Column(String(36), nullable=False, index=True)
    plaid_item_id = Column(
        String(36), ForeignKey("plaid_items.id"), nullable=True, index=True
    )
    plaid_account_id = Column(String, nullable=True)
    name = Column(String, nullable=False)
    mask = Column(String, nullable=True)  # Last 4 digits
    type = Column(String, nullable=False, default=BankAccountType.CHECKING.value)
    current_balance = Column(Numeric(14, 2), nullable=True)
    last_synced_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    plaid_item = relationship("PlaidItem", back_populates="bank_accounts")
    transactions = relationship("BankTransaction", back_populates="account")
