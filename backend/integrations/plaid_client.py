"""Plaid API client.

Wraps the plaid-python SDK for the transactions product: Link token
creation, public token exchange, the cursor-based transactions/sync feed,
account balances, item removal and webhook verification keys.

The methods the sync engine calls (see ``BankDataProvider``) never raise
for provider or network failures; they return a ``ProviderResult`` whose
``error`` carries the Plaid error code so the caller can tell "re-link
required" apart from a transient failure.
"""

import json
import logging
from datetime import date
from decimal import Decimal, InvalidOperation

from plaid import ApiException, Environment
from plaid.api.plaid_api import PlaidApi
from plaid.api_client import ApiClient
from plaid.configuration import Configuration
from plaid.model.accounts_balance_get_request import AccountsBalanceGetRequest
from plaid.model.accounts_get_request import AccountsGetRequest
from plaid.model.country_code import CountryCode
from plaid.model.item_public_token_exchange_request import ItemPublicTokenExchangeRequest
from plaid.model.item_remove_request import ItemRemoveRequest
from plaid.model.link_token_create_request import LinkTokenCreateRequest
from plaid.model.link_token_create_request_user import LinkTokenCreateRequestUser
from plaid.model.products import Products
from plaid.model.transactions_refresh_request import TransactionsRefreshRequest
from plaid.model.transactions_sync_request import TransactionsSyncRequest
from plaid.model.webhook_verification_key_get_request import WebhookVerificationKeyGetRequest
from urllib3.exceptions import HTTPError

from config import settings
from integrations.provider_protocol import (
    RECONNECT_ERROR_CODES,
    ErrorCategory,
    PlaidTransaction,
    ProviderAccount,
    ProviderResult,
    ProviderSyncError,
    TransactionsSyncPage,
)

logger = logging.getLogger(__name__)

# Map PLAID_ENVIRONMENT setting to SDK host URLs.
# Plaid's Development environment is deprecated; only sandbox and production
# are supported.
_ENVIRONMENT_MAP: dict[str, str] = {
    "sandbox": Environment.Sandbox,
    "production": Environment.Production,
}


class PlaidClient:
    """Wrapper around the Plaid API.

    Implements the BankDataProvider protocol used by the sync engine.
    """

    def __init__(
        self,
        client_id: str | None = None,
        secret: str | None = None,
        environment: str | None = None,
    ):
        self._client_id = client_id or settings.PLAID_CLIENT_ID
        self._secret = secret or settings.PLAID_SECRET
        self._environment = environment or settings.PLAID_ENVIRONMENT

        # Lazily created on first use
        self._api: PlaidApi | None = None

    def _get_api(self) -> PlaidApi:
        """Return (and cache) a PlaidApi instance."""
        if self._api is None:
            env_key = self._environment.lower()
            host = _ENVIRONMENT_MAP.get(env_key)
            if host is None:
                logger.warning(
                    "Unknown PLAID_ENVIRONMENT=%r, falling back to sandbox. "
                    "Valid values: sandbox, production",
                    self._environment,
                )
                host = Environment.Sandbox
            logger.info("Plaid API client: environment=%s, host=%s", env_key, host)
            configuration = Configuration(
                host=host,
                api_key={
                    "clientId": self._client_id,
                    "secret": self._secret,
                },
            )
            self._api = PlaidApi(ApiClient(configuration))
        return self._api

    @property
    def provider_name(self) -> str:
        return "Plaid"

    def is_configured(self) -> bool:
        """Check if Plaid credentials are configured."""
        return bool(self._client_id) and bool(self._secret)

    # ------------------------------------------------------------------
    # Link flow (used by API routes, raises on failure)
    # ------------------------------------------------------------------

    def create_link_token(self, owner_id: str, access_token: str | None = None) -> str:
        """Create a Plaid Link token for the browser-based auth flow.

        Args:
            owner_id: Our user id, sent as Plaid's ``client_user_id``.
            access_token: When given, the token opens Link in update mode
                to repair an item that needs re-authentication.

        Returns:
            The link_token string to be passed to Plaid Link.
        """
        kwargs = {
            "user": LinkTokenCreateRequestUser(client_user_id=owner_id),
            "client_name": "Ledger Sync",
            "country_codes": [CountryCode("US")],
            "language": "en",
        }
        if access_token:
            kwargs["access_token"] = access_token
        else:
            kwargs["products"] = [Products("transactions")]
        response = self._get_api().link_token_create(LinkTokenCreateRequest(**kwargs))
        return response["link_token"]

    def exchange_public_token(self, public_token: str) -> dict:
        """Exchange a Plaid Link public_token for a permanent access_token.

        Returns:
            Dict with ``access_token`` and ``item_id``.
        """
        request = ItemPublicTokenExchangeRequest(public_token=public_token)
        response = self._get_api().item_public_token_exchange(request)
        return {
            "access_token": response["access_token"],
            "item_id": response["item_id"],
        }

    def remove_item(self, access_token: str) -> None:
        """Revoke an access token by calling Plaid's /item/remove endpoint."""
        self._get_api().item_remove(ItemRemoveRequest(access_token=access_token))

    def get_webhook_verification_key(self, key_id: str) -> ProviderResult[dict]:
        """Fetch the JWK that signs webhooks carrying ``key_id`` in their header."""
        try:
            response = self._get_api().webhook_verification_key_get(
                WebhookVerificationKeyGetRequest(key_id=key_id)
            )
        except ApiException as e:
            return ProviderResult.failure(self._map_plaid_error(e))
        except (HTTPError, OSError) as e:
            return ProviderResult.failure(self._map_transport_error(e))
        return ProviderResult.success(self._json_safe(response["key"]))

    # ------------------------------------------------------------------
    # BankDataProvider protocol
    # ------------------------------------------------------------------

    def transactions_sync(
        self,
        access_token: str,
        cursor: str | None = None,
        timeout: float | None = None,
    ) -> ProviderResult[TransactionsSyncPage]:
        """Fetch one page of /transactions/sync.

        An empty or missing cursor starts from the beginning of the item's
        history.
        """
        kwargs = {
            "access_token": access_token,
            "count": settings.PLAID_SYNC_PAGE_SIZE,
        }
        if cursor:
            kwargs["cursor"] = cursor

        try:
            response = self._get_api().transactions_sync(
                TransactionsSyncRequest(**kwargs),
                _request_timeout=timeout or settings.PLAID_REQUEST_TIMEOUT_SECONDS,
            )
        except ApiException as e:
            return ProviderResult.failure(self._map_plaid_error(e))
        except (HTTPError, OSError) as e:
            return ProviderResult.failure(self._map_transport_error(e))

        page = TransactionsSyncPage(
            added=self._map_transactions(response.get("added", []) or []),
            modified=self._map_transactions(response.get("modified", []) or []),
            removed=[
                r.get("transaction_id")
                for r in response.get("removed", []) or []
                if r.get("transaction_id")
            ],
            next_cursor=response.get("next_cursor"),
            has_more=bool(response.get("has_more", False)),
        )
        return ProviderResult.success(page)

    def get_balances(
        self,
        access_token: str,
        timeout: float | None = None,
    ) -> ProviderResult[dict[str, Decimal | None]]:
        """Fetch real-time current balances from /accounts/balance/get."""
        try:
            response = self._get_api().accounts_balance_get(
                AccountsBalanceGetRequest(access_token=access_token),
                _request_timeout=timeout or settings.PLAID_REQUEST_TIMEOUT_SECONDS,
            )
        except ApiException as e:
            return ProviderResult.failure(self._map_plaid_error(e))
        except (HTTPError, OSError) as e:
            return ProviderResult.failure(self._map_transport_error(e))

        balances: dict[str, Decimal | None] = {}
        for acct in response.get("accounts", []) or []:
            acct_id = acct.get("account_id")
            if acct_id:
                balances[acct_id] = self._to_decimal((acct.get("balances") or {}).get("current"))
        return ProviderResult.success(balances)

    def refresh_transactions(self, access_token: str) -> ProviderResult[None]:
        """Request an on-demand refresh from the institution."""
        try:
            self._get_api().transactions_refresh(
                TransactionsRefreshRequest(access_token=access_token)
            )
        except ApiException as e:
            return ProviderResult.failure(self._map_plaid_error(e))
        except (HTTPError, OSError) as e:
            return ProviderResult.failure(self._map_transport_error(e))
        return ProviderResult.success(None)

    def get_accounts(self, access_token: str) -> ProviderResult[list[ProviderAccount]]:
        """List the accounts of a linked item (used after token exchange)."""
        try:
            response = self._get_api().accounts_get(
                AccountsGetRequest(access_token=access_token)
            )
        except ApiException as e:
            return ProviderResult.failure(self._map_plaid_error(e))
        except (HTTPError, OSError) as e:
            return ProviderResult.failure(self._map_transport_error(e))

        accounts: list[ProviderAccount] = []
        for acct in response.get("accounts", []) or []:
            acct_id = acct.get("account_id")
            if not acct_id:
                continue
            accounts.append(ProviderAccount(
                id=acct_id,
                name=acct.get("name") or acct.get("official_name") or "Plaid Account",
                type=self._enum_str(acct.get("type")),
                subtype=self._enum_str(acct.get("subtype")),
                mask=acct.get("mask"),
                current_balance=self._to_decimal((acct.get("balances") or {}).get("current")),
            ))
        return ProviderResult.success(accounts)

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    def _map_transactions(self, txns) -> list[PlaidTransaction]:
        mapped = []
        for txn in txns:
            transaction = self._map_transaction(txn)
            if transaction:
                mapped.append(transaction)
        return mapped

    def _map_transaction(self, txn) -> PlaidTransaction | None:
        """Map a Plaid transaction to a PlaidTransaction.

        The Plaid sign convention (positive = money out) is kept as-is;
        the reconciliation engine turns it into amount + direction.
        """
        transaction_id = txn.get("transaction_id")
        if not transaction_id:
            return None

        txn_date = txn.get("date")
        if isinstance(txn_date, str):
            try:
                txn_date = date.fromisoformat(txn_date)
            except ValueError:
                txn_date = None
        amount = self._to_decimal(txn.get("amount"))
        if txn_date is None or amount is None:
            logger.warning("Skipping malformed Plaid transaction %s", transaction_id)
            return None

        return PlaidTransaction(
            transaction_id=transaction_id,
            account_id=txn.get("account_id", ""),
            date=txn_date,
            amount=amount,
            name=txn.get("name"),
            merchant_name=txn.get("merchant_name"),
            pending=bool(txn.get("pending", False)),
            raw_data=self._json_safe(txn),
        )

    # ------------------------------------------------------------------
    # Error mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _map_plaid_error(exc: ApiException) -> ProviderSyncError:
        """Map a Plaid ApiException to a ProviderSyncError."""
        status = exc.status or 0
        message = str(exc)

        error_code = None
        try:
            body = json.loads(exc.body) if exc.body else {}
        except (TypeError, ValueError):
            body = {}
        if isinstance(body, dict):
            error_code = body.get("error_code") or None
            error_message = body.get("error_message")
            if error_message:
                message = error_message

        if error_code in RECONNECT_ERROR_CODES or status in (401, 403):
            category = ErrorCategory.AUTH
        elif status == 429 or error_code == "RATE_LIMIT_EXCEEDED":
            category = ErrorCategory.RATE_LIMIT
        elif status >= 500:
            category = ErrorCategory.CONNECTION
        else:
            category = ErrorCategory.UNKNOWN

        return ProviderSyncError(
            message=message,
            category=category,
            error_code=error_code,
            retriable=category in (ErrorCategory.RATE_LIMIT, ErrorCategory.CONNECTION),
        )

    @staticmethod
    def _map_transport_error(exc: Exception) -> ProviderSyncError:
        """Network failures never reached Plaid, so they carry no error code."""
        return ProviderSyncError(
            message=f"Could not reach Plaid: {exc}",
            category=ErrorCategory.CONNECTION,
            retriable=True,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _to_decimal(value) -> Decimal | None:
        """Convert a value to Decimal, returning None on failure."""
        if value is None:
            return None
        try:
            return Decimal(str(value))
        except (InvalidOperation, ValueError):
            return None

    @staticmethod
    def _enum_str(value) -> str | None:
        """SDK enum models stringify to their value."""
        return str(value).lower() if value is not None else None

    @staticmethod
    def _json_safe(obj) -> dict:
        """Convert an SDK model (or plain dict) to JSON-serialisable data."""
        raw = obj.to_dict() if hasattr(obj, "to_dict") else dict(obj)
        return json.loads(json.dumps(raw, default=str))
