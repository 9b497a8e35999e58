"""Transaction categories and the user's auto-categorization rules."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class TransactionCategory(Base):
    """A user-defined spending/income category."""

    __tablename__ = "transaction_categories"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    owner_id = Column(String(36), nullable=False, index=True)
    name = Column(String, nullable=False)
    color = Column(String, nullable=True)  # Hex color code, e.g. "#3B82F6"
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))


class CategorizationRule(Base):
    """A regex rule that assigns a category to matching transactions.

    Rules are evaluated in ascending ``position``; the first rule whose
    pattern matches a transaction's description or merchant name wins.
    """

    __tablename__ = "categorization_rules"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    owner_id = Column(String(36), nullable=False, index=True)
    pattern = Column(String, nullable=False)
    category_id = Column(
        String(36), ForeignKey("transaction_categories.id"), nullable=False
    )
    position = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    category = relationship("TransactionCategory")
