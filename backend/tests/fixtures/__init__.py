"""Test fixtures and sample data."""
import pytest
from datetime import date
from decimal import Decimal

from models import (
    BankAccount,
    BankAccountType,
    BankTransaction,
    CategorizationRule,
    PlaidItem,
    TransactionCategory,
    TransactionType,
)
from sqlalchemy.orm import Session

OWNER_ID = "user-1"
OTHER_OWNER_ID = "user-2"


def create_transaction(
    db: Session,
    account: BankAccount,
    description: str = "Manual entry",
    amount: Decimal = Decimal("10.00"),
    txn_type: str = TransactionType.OUTFLOW.value,
    txn_date: date = date(2025, 3, 14),
    plaid_transaction_id: str | None = None,
    **kwargs,
) -> BankTransaction:
    """Create a bank transaction for an account.

    This is a helper function (not a fixture) for tests that need several
    transactions with different values.
    """
    txn = BankTransaction(
        owner_id=account.owner_id,
        account_id=account.id,
        description=description,
        amount=amount,
        type=txn_type,
        date=txn_date,
        statement_month=txn_date.month,
        statement_year=txn_date.year,
        plaid_transaction_id=plaid_transaction_id,
        **kwargs,
    )
    db.add(txn)
    db.flush()
    return txn


def create_rule(
    db: Session,
    category: TransactionCategory,
    pattern: str,
    position: int = 0,
) -> CategorizationRule:
    """Create a categorization rule without validating its pattern."""
    rule = CategorizationRule(
        owner_id=category.owner_id,
        pattern=pattern,
        category_id=category.id,
        position=position,
    )
    db.add(rule)
    db.flush()
    return rule


@pytest.fixture
def plaid_item(db: Session) -> PlaidItem:
    """Create a linked Plaid item with no cursor yet."""
    item = PlaidItem(
        owner_id=OWNER_ID,
        item_id="item_abc",
        access_token="access-sandbox-123",
        institution_id="ins_109508",
        institution_name="First Platypus Bank",
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


@pytest.fixture
def checking_account(db: Session, plaid_item: PlaidItem) -> BankAccount:
    """Create a checking account bound to the Plaid item."""
    acc = BankAccount(
        owner_id=OWNER_ID,
        plaid_item_id=plaid_item.id,
        plaid_account_id="plaid_acc_checking",
        name="Plaid Checking",
        mask="0000",
        type=BankAccountType.CHECKING.value,
        current_balance=Decimal("100.00"),
    )
    db.add(acc)
    db.commit()
    db.refresh(acc)
    return acc


@pytest.fixture
def credit_account(db: Session, plaid_item: PlaidItem) -> BankAccount:
    """Create a credit card account bound to the Plaid item."""
    acc = BankAccount(
        owner_id=OWNER_ID,
        plaid_item_id=plaid_item.id,
        plaid_account_id="plaid_acc_card",
        name="Plaid Credit Card",
        mask="3333",
        type=BankAccountType.CREDIT.value,
    )
    db.add(acc)
    db.commit()
    db.refresh(acc)
    return acc


@pytest.fixture
def category(db: Session) -> TransactionCategory:
    """Create a test category."""
    cat = TransactionCategory(owner_id=OWNER_ID, name="Dining", color="#F97316")
    db.add(cat)
    db.commit()
    db.refresh(cat)
    return cat


@pytest.fixture
def other_category(db: Session) -> TransactionCategory:
    """Create a second test category."""
    cat = TransactionCategory(owner_id=OWNER_ID, name="Groceries", color="#22C55E")
    db.add(cat)
    db.commit()
    db.refresh(cat)
    return cat
