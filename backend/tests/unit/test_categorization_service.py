"""Tests for the categorization rule engine."""

from decimal import Decimal

import pytest

from models import BankTransaction, CategorizationRule, TransactionCategory
from services.categorization_service import (
    CategorizationService,
    CompiledRule,
    InvalidPatternError,
    compile_rule,
    match_category,
)
from tests.fixtures import OWNER_ID, create_rule, create_transaction


def _rule(pattern, category_id="cat", rule_id="r1"):
    return CategorizationRule(id=rule_id, pattern=pattern, category_id=category_id)


class TestCompileRule:
    def test_valid_pattern_is_case_insensitive(self):
        compiled = compile_rule(_rule("starbucks"))

        assert isinstance(compiled, CompiledRule)
        assert compiled.regex.search("STARBUCKS #123")

    def test_invalid_pattern_returned_as_value(self):
        compiled = compile_rule(_rule("(unclosed", rule_id="bad"))

        assert isinstance(compiled, InvalidPatternError)
        assert compiled.rule_id == "bad"
        assert compiled.pattern == "(unclosed"


class TestMatchCategory:
    def test_first_matching_rule_wins(self):
        rules = [compile_rule(_rule("cafe", "catA")), compile_rule(_rule("corner", "catB"))]

        assert match_category(rules, "Corner Cafe", None) == "catA"

    def test_earlier_rule_beats_more_specific_later_rule(self):
        rules = [
            compile_rule(_rule("coffee", "catA", "r1")),
            compile_rule(_rule("cafe", "catA", "r2")),
            compile_rule(_rule("corner cafe", "catB", "r3")),
        ]

        assert match_category(rules, "Corner Cafe", None) == "catA"

    def test_matches_merchant_name(self):
        rules = [compile_rule(_rule("^uber", "travel"))]

        assert match_category(rules, "Card purchase 1234", "Uber Technologies") == "travel"

    def test_no_match(self):
        rules = [compile_rule(_rule("uber", "travel"))]

        assert match_category(rules, "Corner Cafe", None) is None
        assert match_category([], "anything", "anything") is None


class TestApplyRules:
    def test_first_match_by_position(self, db, checking_account, category, other_category):
        create_rule(db, other_category, "corner", position=1)
        create_rule(db, category, "cafe", position=0)
        txn = create_transaction(db, checking_account, description="Corner Cafe")
        db.commit()

        result = CategorizationService().apply_rules(db, OWNER_ID, [txn.id])

        assert result.categorized == 1
        db.refresh(txn)
        assert txn.category_id == category.id

    def test_batches_one_update_per_category(self, db, checking_account, category, other_category):
        create_rule(db, category, "coffee", position=0)
        create_rule(db, other_category, "market", position=1)
        ids = []
        for i in range(100):
            if i < 40:
                description = f"Coffee #{i}"
            elif i < 60:
                description = f"Farmers Market {i}"
            else:
                description = f"Hardware store {i}"
            ids.append(create_transaction(db, checking_account, description=description).id)
        db.commit()

        result = CategorizationService().apply_rules(db, OWNER_ID, ids)

        assert result.categorized == 60
        assert result.batches == 2
        assert db.query(BankTransaction).filter(BankTransaction.category_id.is_(None)).count() == 40

    def test_one_rule_matching_by_merchant_is_one_batch(self, db, checking_account, category):
        create_rule(db, category, "^blue bottle")
        ids = []
        for i in range(100):
            merchant = "Blue Bottle Coffee" if i < 60 else None
            ids.append(create_transaction(
                db, checking_account, description=f"POS DEBIT {i}", merchant_name=merchant
            ).id)
        db.commit()

        result = CategorizationService().apply_rules(db, OWNER_ID, ids)

        assert (result.categorized, result.batches) == (60, 1)
        assert db.query(BankTransaction).filter(
            BankTransaction.category_id == category.id
        ).count() == 60
        assert db.query(BankTransaction).filter(BankTransaction.category_id.is_(None)).count() == 40

    def test_invalid_rule_is_skipped(self, db, checking_account, category, other_category):
        create_rule(db, other_category, "(broken", position=0)
        create_rule(db, category, "cafe", position=1)
        txn = create_transaction(db, checking_account, description="Corner Cafe")
        db.commit()

        result = CategorizationService().apply_rules(db, OWNER_ID, [txn.id])

        assert result.categorized == 1
        assert [r.pattern for r in result.invalid_rules] == ["(broken"]
        db.refresh(txn)
        assert txn.category_id == category.id

    def test_already_categorized_rows_untouched(self, db, checking_account, category, other_category):
        create_rule(db, category, "cafe")
        txn = create_transaction(
            db, checking_account, description="Corner Cafe", category_id=other_category.id
        )
        db.commit()

        result = CategorizationService().apply_rules(db, OWNER_ID)

        assert result.categorized == 0
        db.refresh(txn)
        assert txn.category_id == other_category.id

    def test_sweep_is_owner_scoped(self, db, checking_account, category):
        create_rule(db, category, "cafe")
        other = TransactionCategory(owner_id="user-2", name="Other")
        db.add(other)
        db.flush()
        foreign_rule = CategorizationRule(owner_id="user-2", pattern="cafe", category_id=other.id)
        db.add(foreign_rule)
        create_transaction(db, checking_account, description="Corner Cafe")
        db.commit()

        result = CategorizationService().apply_rules(db, "user-2")

        assert result.categorized == 0

    def test_empty_id_list_does_nothing(self, db, category):
        create_rule(db, category, "cafe")

        result = CategorizationService().apply_rules(db, OWNER_ID, [])

        assert result.categorized == 0
        assert result.batches == 0


class TestRuleManagement:
    def test_create_appends_to_order(self, db, category):
        service = CategorizationService()
        first, _ = service.create_rule(db, OWNER_ID, "cafe", category.id)
        second, _ = service.create_rule(db, OWNER_ID, " market ", category.id)

        assert first.position == 0
        assert second.position == 1
        assert second.pattern == "market"

    def test_create_rejects_invalid_pattern(self, db, category):
        with pytest.raises(ValueError, match="Invalid regex"):
            CategorizationService().create_rule(db, OWNER_ID, "[a-", category.id)

    def test_create_apply_to_existing(self, db, checking_account, category, other_category):
        create_rule(db, other_category, "cafe", position=0)
        txn = create_transaction(db, checking_account, description="Corner Cafe")
        db.commit()

        rule, applied = CategorizationService().create_rule(
            db, OWNER_ID, "corner", category.id, apply_to_existing=True
        )

        assert applied == 1
        db.refresh(txn)
        # Only the new rule is applied, not the older one ahead of it
        assert txn.category_id == category.id

    def test_reorder(self, db, category):
        a = create_rule(db, category, "a", position=0)
        b = create_rule(db, category, "b", position=1)

        ordered = CategorizationService().reorder_rules(db, OWNER_ID, [b.id, a.id])

        assert [r.id for r in ordered] == [b.id, a.id]
        assert b.position == 0
        assert a.position == 1

    def test_reorder_requires_every_rule(self, db, category):
        a = create_rule(db, category, "a", position=0)
        create_rule(db, category, "b", position=1)

        with pytest.raises(ValueError):
            CategorizationService().reorder_rules(db, OWNER_ID, [a.id])

    def test_update_and_delete(self, db, category, other_category):
        service = CategorizationService()
        rule = create_rule(db, category, "a")

        service.update_rule(db, rule, pattern="b", category_id=other_category.id)
        assert rule.pattern == "b"
        assert rule.category_id == other_category.id

        with pytest.raises(ValueError):
            service.update_rule(db, rule, pattern="(")

        service.delete_rule(db, rule)
        assert db.query(CategorizationRule).count() == 0

    def test_amount_does_not_matter(self, db, checking_account, category):
        create_rule(db, category, "refund")
        txn = create_transaction(db, checking_account, description="Refund", amount=Decimal("0.01"))
        db.commit()

        assert CategorizationService().apply_rules(db, OWNER_ID, [txn.id]).categorized == 1
