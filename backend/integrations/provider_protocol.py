"""Provider protocol definitions for bank data aggregation.

Normalized records and the client interface the sync engine depends on.
Client methods report failures as values (``ProviderResult.error``)
instead of raising, so the sync orchestrator can classify them without
wrapping every call in try/except.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Generic, Protocol, TypeVar

T = TypeVar("T")


@dataclass
class ProviderAccount:
    """Normalized account data from the provider."""

    id: str  # Provider's external ID for the account
    name: str
    type: str | None = None  # Plaid type, e.g. "depository", "credit"
    subtype: str | None = None  # Plaid subtype, e.g. "checking", "savings"
    mask: str | None = None  # Last 4 digits (if available)
    current_balance: Decimal | None = None


@dataclass
class PlaidTransaction:
    """One added or modified transaction from the delta feed.

    ``amount`` keeps the provider sign convention: negative = money in,
    positive = money out.
    """

    transaction_id: str
    account_id: str  # Provider's account ID this transaction belongs to
    date: date
    amount: Decimal
    name: str | None = None
    merchant_name: str | None = None
    pending: bool = False
    raw_data: dict | None = None  # JSON-safe raw provider payload


@dataclass
class TransactionsSyncPage:
    """One page of the cursor-based transactions/sync feed."""

    added: list[PlaidTransaction] = field(default_factory=list)
    modified: list[PlaidTransaction] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)  # transaction ids
    next_cursor: str | None = None
    has_more: bool = False


@dataclass
class TransactionDelta:
    """All pages of one delta walk, accumulated in feed order."""

    added: list[PlaidTransaction] = field(default_factory=list)
    modified: list[PlaidTransaction] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    next_cursor: str | None = None
    pages: int = 0


# Provider error codes after which the item only works again once the user
# goes through Link update mode. INTERNAL_SERVER_ERROR is included because
# Plaid returns it for institutions that silently dropped the connection.
RECONNECT_ERROR_CODES: frozenset[str] = frozenset(
    {
        "ITEM_LOGIN_REQUIRED",
        "INVALID_CREDENTIALS",
        "INVALID_UPDATED_USERNAME",
        "INVALID_MFA",
        "ITEM_NOT_SUPPORTED",
        "INTERNAL_SERVER_ERROR",
    }
)


class ErrorCategory(str, Enum):
    """Category of a provider error."""

    CONNECTION = "connection"
    AUTH = "auth"  # the item must be re-linked
    RATE_LIMIT = "rate_limit"
    UNKNOWN = "unknown"


@dataclass
class ProviderSyncError:
    """Structured error from a provider call.

    ``error_code`` is the provider's own code (e.g. ``ITEM_LOGIN_REQUIRED``)
    and is ``None`` for transport failures that never reached the provider.
    """

    message: str
    category: ErrorCategory = ErrorCategory.UNKNOWN
    error_code: str | None = None
    retriable: bool = False

    def __str__(self) -> str:
        return self.message


@dataclass
class ProviderResult(Generic[T]):
    """Value-or-error returned by every provider call."""

    value: T | None = None
    error: ProviderSyncError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "ProviderResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ProviderSyncError) -> "ProviderResult[T]":
        return cls(error=error)


class BankDataProvider(Protocol):
    """Protocol the sync engine uses to talk to the aggregator.

    Any provider integration (Plaid today) must implement these methods.
    """

    def transactions_sync(
        self,
        access_token: str,
        cursor: str | None = None,
        timeout: float | None = None,
    ) -> ProviderResult[TransactionsSyncPage]:
        """Fetch one page of transaction deltas starting at ``cursor``."""
        ...

    def get_balances(
        self,
        access_token: str,
        timeout: float | None = None,
    ) -> ProviderResult[dict[str, Decimal | None]]:
        """Fetch current balances keyed by provider account id."""
        ...

    def refresh_transactions(self, access_token: str) -> ProviderResult[None]:
        """Ask the institution for fresh data (asynchronous on the provider side)."""
        ...

    def get_accounts(self, access_token: str) -> ProviderResult[list[ProviderAccount]]:
        """List the accounts of a linked item."""
        ...
