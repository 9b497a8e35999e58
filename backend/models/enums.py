"""String enums stored in model columns."""

from enum import Enum


class PlaidItemStatus(str, Enum):
    """Health of a linked institution."""

    OK = "OK"
    LOGIN_REQUIRED = "LOGIN_REQUIRED"
    ERROR = "ERROR"


class BankAccountType(str, Enum):
    """Account types; CREDIT balances are stored as liabilities (negative)."""

    CHECKING = "CHECKING"
    SAVINGS = "SAVINGS"
    CREDIT = "CREDIT"


class TransactionType(str, Enum):
    """Direction of a money movement. Amounts are always non-negative."""

    INFLOW = "INFLOW"
    OUTFLOW = "OUTFLOW"
