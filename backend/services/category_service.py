"""Service for managing transaction categories."""

import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from models import BankTransaction, CategorizationRule, TransactionCategory

logger = logging.getLogger(__name__)


class CategoryInUseError(Exception):
    """Raised when deleting a category that transactions still reference."""


class CategoryService:
    """CRUD for an owner's transaction categories."""

    @staticmethod
    def list_categories(db: Session, owner_id: str) -> list[tuple[TransactionCategory, int]]:
        """Return the owner's categories by name, each with its transaction count."""
        counts = (
            db.query(BankTransaction.category_id, func.count(BankTransaction.id))
            .filter(BankTransaction.owner_id == owner_id)
            .filter(BankTransaction.category_id.isnot(None))
            .group_by(BankTransaction.category_id)
            .all()
        )
        by_category = dict(counts)
        categories = (
            db.query(TransactionCategory)
            .filter(TransactionCategory.owner_id == owner_id)
            .order_by(func.lower(TransactionCategory.name))
            .all()
        )
        return [(c, by_category.get(c.id, 0)) for c in categories]

    @staticmethod
    def create_category(
        db: Session, owner_id: str, name: str, color: str | None = None
    ) -> TransactionCategory:
        """Create a category.

        Raises:
            ValueError: If the name is blank.
        """
        name = name.strip()
        if not name:
            raise ValueError("Category name must not be blank")
        category = TransactionCategory(
            owner_id=owner_id,
            name=name,
            color=color.strip() if color else None,
        )
        db.add(category)
        db.flush()
        logger.info("Created category %s for owner %s", category.id, owner_id)
        return category

    @staticmethod
    def update_category(
        db: Session,
        category: TransactionCategory,
        name: str | None = None,
        color: str | None = None,
    ) -> TransactionCategory:
        """Rename or recolor a category.

        Raises:
            ValueError: If the new name is blank.
        """
        if name is not None:
            name = name.strip()
            if not name:
                raise ValueError("Category name must not be blank")
            category.name = name
        if color is not None:
            category.color = color.strip() or None
        db.flush()
        return category

    @staticmethod
    def delete_category(db: Session, category: TransactionCategory) -> int:
        """Delete a category together with the rules that assign it.

        Raises:
            CategoryInUseError: If any transaction is assigned to the category.

        Returns:
            Number of rules deleted with it.
        """
        assigned = (
            db.query(func.count(BankTransaction.id))
            .filter(BankTransaction.category_id == category.id)
            .scalar()
        )
        if assigned:
            raise CategoryInUseError(
                f"Cannot delete a category with {assigned} assigned transaction(s). "
                "Reassign them first."
            )

        rules_deleted = (
            db.query(CategorizationRule)
            .filter(CategorizationRule.category_id == category.id)
            .delete(synchronize_session=False)
        )
        db.delete(category)
        db.flush()
        logger.info(
            "Deleted category %s and %d rule(s) assigning it", category.id, rules_deleted
        )
        return rules_deleted
