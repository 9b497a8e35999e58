"""API route handlers."""
from . import bank_accounts, categories, categorization_rules, plaid, sync, transactions, webhooks

__all__ = [
    "bank_accounts",
    "categories",
    "categorization_rules",
    "plaid",
    "sync",
    "transactions",
    "webhooks",
]
