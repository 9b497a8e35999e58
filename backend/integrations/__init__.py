"""External API integrations.

This package contains:
- Provider protocol: normalized records and the BankDataProvider interface
- Plaid client: Integration with the Plaid transactions API
"""

from integrations.provider_protocol import (
    RECONNECT_ERROR_CODES,
    BankDataProvider,
    ErrorCategory,
    PlaidTransaction,
    ProviderAccount,
    ProviderResult,
    ProviderSyncError,
    TransactionDelta,
    TransactionsSyncPage,
)

__all__ = [
    "RECONNECT_ERROR_CODES",
    "BankDataProvider",
    "ErrorCategory",
    "PlaidTransaction",
    "ProviderAccount",
    "ProviderResult",
    "ProviderSyncError",
    "TransactionDelta",
    "TransactionsSyncPage",
]
