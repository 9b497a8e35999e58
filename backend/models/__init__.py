"""SQLAlchemy ORM models."""

from .bank_account import BankAccount
from .bank_transaction import BankTransaction
from .categorization import CategorizationRule, TransactionCategory
from .deleted_plaid_transaction import DeletedPlaidTransaction
from .enums import BankAccountType, PlaidItemStatus, TransactionType
from .plaid_item import PlaidItem
from .utils import generate_uuid

__all__ = ["BankAccount", "BankAccountType", "BankTransaction", "CategorizationRule", "DeletedPlaidTransaction", "PlaidItem", "PlaidItemStatus", "TransactionCategory", "TransactionType", "generate_uuid"]
