"""Categorization rule engine.

Rules are user-supplied regular expressions matched case-insensitively
against a transaction's description and merchant name. Rules are tried in
ascending ``position``; the first match assigns its category. A rule whose
pattern does not compile is skipped for the run instead of aborting it.
"""

import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from models import BankTransaction, CategorizationRule

logger = logging.getLogger(__name__)


@dataclass
class CompiledRule:
    """A rule whose pattern compiled successfully."""

    rule_id: str
    category_id: str
    regex: re.Pattern


@dataclass
class InvalidPatternError:
    """A rule whose pattern is not a valid regular expression."""

    rule_id: str
    pattern: str
    message: str


@dataclass
class CategorizationResult:
    """Outcome of one categorization run."""

    categorized: int = 0
    batches: int = 0  # UPDATE statements issued, one per category
    invalid_rules: list[InvalidPatternError] = field(default_factory=list)


def compile_rule(rule: CategorizationRule) -> CompiledRule | InvalidPatternError:
    """Compile a rule's pattern, returning the failure as a value."""
    try:
        regex = re.compile(rule.pattern, re.IGNORECASE)
    except re.error as e:
        return InvalidPatternError(rule_id=rule.id, pattern=rule.pattern, message=str(e))
    return CompiledRule(rule_id=rule.id, category_id=rule.category_id, regex=regex)


def match_category(
    compiled_rules: list[CompiledRule],
    description: str | None,
    merchant_name: str | None,
) -> str | None:
    """Return the category of the first rule matching either field."""
    for compiled in compiled_rules:
        if description and compiled.regex.search(description):
            return compiled.category_id
        if merchant_name and compiled.regex.search(merchant_name):
            return compiled.category_id
    return None


def validate_pattern(pattern: str) -> str | None:
    """Return an error message if ``pattern`` is not a valid regex."""
    try:
        re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        return str(e)
    return None


class CategorizationService:
    """Applies and manages a user's categorization rules."""

    @staticmethod
    def _ordered_rules(db: Session, owner_id: str) -> list[CategorizationRule]:
        return (
            db.query(CategorizationRule)
            .filter(CategorizationRule.owner_id == owner_id)
            .order_by(CategorizationRule.position, CategorizationRule.created_at)
            .all()
        )

    def apply_rules(
        self,
        db: Session,
        owner_id: str,
        transaction_ids: Optional[list[str]] = None,
        rules: Optional[list[CategorizationRule]] = None,
    ) -> CategorizationResult:
        """Assign categories to uncategorized transactions.

        Args:
            db: Database session
            owner_id: Owner whose rules and transactions are used
            transaction_ids: Restrict to these transactions. ``None`` sweeps
                every uncategorized transaction the owner has.
            rules: Use these rules instead of the owner's full ordered set.

        Returns:
            CategorizationResult. Does not commit.
        """
        result = CategorizationResult()
        if transaction_ids is not None and not transaction_ids:
            return result

        if rules is None:
            rules = self._ordered_rules(db, owner_id)

        compiled_rules: list[CompiledRule] = []
        for rule in rules:
            compiled = compile_rule(rule)
            if isinstance(compiled, InvalidPatternError):
                logger.warning(
                    "Skipping categorization rule %s with invalid pattern %r: %s",
                    compiled.rule_id, compiled.pattern, compiled.message,
                )
                result.invalid_rules.append(compiled)
                continue
            compiled_rules.append(compiled)

        if not compiled_rules:
            return result

        query = db.query(
            BankTransaction.id,
            BankTransaction.description,
            BankTransaction.merchant_name,
        ).filter(
            BankTransaction.owner_id == owner_id,
            BankTransaction.category_id.is_(None),
        )
        if transaction_ids is not None:
            query = query.filter(BankTransaction.id.in_(transaction_ids))

        ids_by_category: dict[str, list[str]] = defaultdict(list)
        for txn_id, description, merchant_name in query.all():
            category_id = match_category(compiled_rules, description, merchant_name)
            if category_id:
                ids_by_category[category_id].append(txn_id)

        for category_id, ids in ids_by_category.items():
            db.execute(
                update(BankTransaction)
                .where(BankTransaction.id.in_(ids))
                .values(category_id=category_id)
                .execution_options(synchronize_session=False)
            )
            result.batches += 1
            result.categorized += len(ids)

        if result.categorized:
            logger.info(
                "Categorized %d transaction(s) for owner %s in %d batch(es)",
                result.categorized, owner_id, result.batches,
            )
        return result

    # ------------------------------------------------------------------
    # Rule management
    # ------------------------------------------------------------------

    def list_rules(self, db: Session, owner_id: str) -> list[CategorizationRule]:
        """Return the owner's rules in evaluation order."""
        return self._ordered_rules(db, owner_id)

    def create_rule(
        self,
        db: Session,
        owner_id: str,
        pattern: str,
        category_id: str,
        apply_to_existing: bool = False,
    ) -> tuple[CategorizationRule, int]:
        """Create a rule at the end of the evaluation order.

        Raises:
            ValueError: If the pattern is not a valid regular expression.

        Returns:
            The new rule and the number of existing uncategorized
            transactions it categorized (0 unless ``apply_to_existing``).
        """
        pattern = pattern.strip()
        error = validate_pattern(pattern)
        if error:
            raise ValueError(f"Invalid regex pattern: {error}")

        last = self._ordered_rules(db, owner_id)
        position = (last[-1].position + 1) if last else 0
        rule = CategorizationRule(
            owner_id=owner_id,
            pattern=pattern,
            category_id=category_id,
            position=position,
        )
        db.add(rule)
        db.flush()

        applied = 0
        if apply_to_existing:
            applied = self.apply_rules(db, owner_id, rules=[rule]).categorized
        return rule, applied

    def update_rule(
        self,
        db: Session,
        rule: CategorizationRule,
        pattern: str | None = None,
        category_id: str | None = None,
    ) -> CategorizationRule:
        """Change a rule's pattern and/or category.

        Raises:
            ValueError: If the new pattern is not a valid regular expression.
        """
        if pattern is not None:
            pattern = pattern.strip()
            error = validate_pattern(pattern)
            if error:
                raise ValueError(f"Invalid regex pattern: {error}")
            rule.pattern = pattern
        if category_id is not None:
            rule.category_id = category_id
        db.flush()
        return rule

    def delete_rule(self, db: Session, rule: CategorizationRule) -> None:
        """Delete a rule. Already-assigned categories are kept."""
        db.delete(rule)
        db.flush()

    def reorder_rules(
        self, db: Session, owner_id: str, rule_ids: list[str]
    ) -> list[CategorizationRule]:
        """Set the evaluation order to ``rule_ids``.

        Raises:
            ValueError: If ``rule_ids`` is not exactly the owner's rule ids.
        """
        rules = {rule.id: rule for rule in self._ordered_rules(db, owner_id)}
        if len(rule_ids) != len(set(rule_ids)) or set(rule_ids) != set(rules):
            raise ValueError("rule_ids must list every rule exactly once")

        for position, rule_id in enumerate(rule_ids):
            rules[rule_id].position = position
        db.flush()
        return [rules[rule_id] for rule_id in rule_ids]
