"""Sync service - runs one bank sync for a linked Plaid item.

A sync checks ownership and the per-owner cooldown, walks the
transactions/sync feed while fetching balances in the background, hands
the result to the reconciliation engine and finally categorizes the newly
inserted rows. Every failure is reported as a ``BankSyncOutcome`` value
rather than raised.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import settings
from integrations.plaid_client import PlaidClient
from integrations.provider_protocol import (
    RECONNECT_ERROR_CODES,
    BankDataProvider,
    ProviderSyncError,
)
from models import BankTransaction, PlaidItem, PlaidItemStatus
from services.categorization_service import CategorizationService
from services.rate_limiter import RateLimitConfig, RateLimiter, get_rate_limiter
from services.reconciliation_service import ReconciliationService
from services.transaction_fetch_service import TransactionFetchService

logger = logging.getLogger(__name__)

LOGIN_REQUIRED_MESSAGE = (
    "Your bank connection needs to be re-authenticated. "
    "Please reconnect the account."
)


class SyncErrorKind(str, Enum):
    """Why a sync did not complete."""

    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    RATE_LIMITED = "RATE_LIMITED"
    LOGIN_REQUIRED = "LOGIN_REQUIRED"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


@dataclass
class SyncCounts:
    added: int = 0
    modified: int = 0
    removed: int = 0
    merged: int = 0
    categorized: int = 0
    skipped: bool = False  # another sync of the same item was already running
    refresh_failed: bool = False
    had_cursor: bool = False
    # raw added/modified/removed sizes of the fetched delta
    provider_returned: dict[str, int] | None = None


@dataclass
class SyncFailure:
    kind: SyncErrorKind
    message: str
    error_code: str | None = None
    reset_at: float | None = None  # RATE_LIMITED only


@dataclass
class BankSyncOutcome:
    """Either ``counts`` (success) or ``failure`` is set."""

    plaid_item_id: str | None
    counts: SyncCounts | None = None
    failure: SyncFailure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def succeeded(cls, plaid_item_id: str, counts: SyncCounts) -> "BankSyncOutcome":
        return cls(plaid_item_id=plaid_item_id, counts=counts)

    @classmethod
    def failed(
        cls,
        plaid_item_id: str | None,
        kind: SyncErrorKind,
        message: str,
        **kwargs,
    ) -> "BankSyncOutcome":
        return cls(plaid_item_id=plaid_item_id, failure=SyncFailure(kind, message, **kwargs))


def classify_provider_error(error: ProviderSyncError) -> SyncErrorKind:
    """Errors that need the user to re-link map to LOGIN_REQUIRED."""
    if error.error_code in RECONNECT_ERROR_CODES:
        return SyncErrorKind.LOGIN_REQUIRED
    return SyncErrorKind.PROVIDER_ERROR


class SyncService:
    """Service for syncing bank transactions from Plaid."""

    # Item ids with a sync in progress, shared across instances. Works for a
    # single process; a multi-worker deployment would need a shared lock.
    _active_items: set[str] = set()
    _active_lock = threading.Lock()

    def __init__(
        self,
        plaid_client: Optional[BankDataProvider] = None,
        rate_limiter: Optional[RateLimiter] = None,
        fetcher: Optional[TransactionFetchService] = None,
        reconciler: Optional[ReconciliationService] = None,
        categorizer: Optional[CategorizationService] = None,
    ):
        """Initialize with optional collaborators for dependency injection.

        Args:
            plaid_client: Provider client. If None, a PlaidClient is created
                on first use.
            rate_limiter: Limiter for the per-owner cooldown. Defaults to the
                process-wide instance.
        """
        self._plaid_client = plaid_client
        self._rate_limiter = rate_limiter or get_rate_limiter()
        self._fetcher = fetcher or TransactionFetchService()
        self._reconciler = reconciler or ReconciliationService()
        self._categorizer = categorizer or CategorizationService()

    @property
    def plaid_client(self) -> BankDataProvider:
        if self._plaid_client is None:
            self._plaid_client = PlaidClient()
        return self._plaid_client

    @classmethod
    def is_item_syncing(cls, plaid_item_id: str) -> bool:
        with cls._active_lock:
            return plaid_item_id in cls._active_items

    @classmethod
    def _claim_item(cls, plaid_item_id: str) -> bool:
        with cls._active_lock:
            if plaid_item_id in cls._active_items:
                return False
            cls._active_items.add(plaid_item_id)
            return True

    @classmethod
    def _release_item(cls, plaid_item_id: str) -> None:
        with cls._active_lock:
            cls._active_items.discard(plaid_item_id)

    def sync_item(
        self,
        db: Session,
        owner_id: str | None,
        plaid_item_id: str,
        enforce_rate_limit: bool = True,
        refresh: bool | None = None,
    ) -> BankSyncOutcome:
        """Sync one Plaid item owned by ``owner_id``.

        Args:
            db: Database session
            owner_id: Authenticated owner; None is rejected as UNAUTHORIZED
            plaid_item_id: Local PlaidItem id
            enforce_rate_limit: Apply the per-owner cooldown (off for the CLI)
            refresh: Ask Plaid to refresh first. Defaults to
                ``PLAID_REFRESH_BEFORE_SYNC``.

        Returns:
            BankSyncOutcome with counts or a classified failure.
        """
        if not owner_id:
            return BankSyncOutcome.failed(
                plaid_item_id, SyncErrorKind.UNAUTHORIZED, "Authentication required"
            )

        item = (
            db.query(PlaidItem)
            .filter(PlaidItem.id == plaid_item_id, PlaidItem.owner_id == owner_id)
            .first()
        )
        if item is None:
            return BankSyncOutcome.failed(
                plaid_item_id, SyncErrorKind.NOT_FOUND, "Plaid item not found"
            )

        if enforce_rate_limit:
            limit = self._rate_limiter.check(
                f"plaid-sync:{owner_id}",
                RateLimitConfig(
                    limit=settings.SYNC_RATE_LIMIT,
                    window_seconds=settings.SYNC_RATE_WINDOW_SECONDS,
                ),
            )
            if not limit.allowed:
                logger.info("Sync rate limited for owner %s", owner_id)
                return BankSyncOutcome.failed(
                    plaid_item_id,
                    SyncErrorKind.RATE_LIMITED,
                    "Too many sync requests. Please wait before syncing again.",
                    reset_at=limit.reset_at,
                )

        if not self._claim_item(plaid_item_id):
            logger.info("Sync of Plaid item %s already in progress, skipping", plaid_item_id)
            return BankSyncOutcome.succeeded(plaid_item_id, SyncCounts(skipped=True))

        if refresh is None:
            refresh = settings.PLAID_REFRESH_BEFORE_SYNC
        try:
            return self._run(db, owner_id, item, refresh)
        finally:
            self._release_item(plaid_item_id)

    def _run(self, db: Session, owner_id: str, item: PlaidItem, refresh: bool) -> BankSyncOutcome:
        client = self.plaid_client
        item_id = item.id
        access_token = item.access_token
        logger.info(
            "Sync started for Plaid item %s (%s), cursor=%s",
            item_id, item.institution_name or "unknown institution",
            "set" if item.cursor else "none",
        )

        counts = SyncCounts(had_cursor=item.cursor is not None)
        if refresh:
            refreshed = client.refresh_transactions(access_token)
            if not refreshed.ok:
                counts.refresh_failed = True
                logger.warning(
                    "Transactions refresh failed for Plaid item %s: %s",
                    item_id, refreshed.error,
                )

        deadline = time.monotonic() + settings.SYNC_FETCH_TIMEOUT_SECONDS
        with ThreadPoolExecutor(max_workers=1, thread_name_prefix="plaid-balances") as executor:
            balance_future = executor.submit(
                client.get_balances, access_token, settings.SYNC_FETCH_TIMEOUT_SECONDS
            )
            fetched = self._fetcher.fetch_all(client, access_token, item.cursor, deadline)
            balances = balance_future.result()

        if not fetched.ok:
            return self._provider_failure(db, item, fetched.error)
        if not balances.ok:
            return self._provider_failure(db, item, balances.error)

        delta = fetched.value
        counts.provider_returned = {
            "added": len(delta.added),
            "modified": len(delta.modified),
            "removed": len(delta.removed),
        }
        reconciled = self._reconciler.reconcile(db, owner_id, item, delta, balances.value)
        if not reconciled.ok:
            return BankSyncOutcome.failed(item_id, SyncErrorKind.INTERNAL_ERROR, reconciled.error)

        counts.added = reconciled.added
        counts.modified = reconciled.modified
        counts.removed = reconciled.removed
        counts.merged = reconciled.merged

        if reconciled.added >= 1:
            counts.categorized = self._categorize_new(db, owner_id, reconciled.inserted_plaid_ids)

        logger.info(
            "Sync completed for Plaid item %s: %d added, %d merged, %d modified, "
            "%d removed, %d categorized",
            item_id, counts.added, counts.merged, counts.modified,
            counts.removed, counts.categorized,
        )
        return BankSyncOutcome.succeeded(item_id, counts)

    def _categorize_new(self, db: Session, owner_id: str, plaid_ids: list[str]) -> int:
        """Categorize freshly inserted rows; failures leave them uncategorized."""
        try:
            ids = [
                row[0]
                for row in db.query(BankTransaction.id)
                .filter(BankTransaction.plaid_transaction_id.in_(plaid_ids))
                .all()
            ]
            result = self._categorizer.apply_rules(db, owner_id, transaction_ids=ids)
            db.commit()
            return result.categorized
        except Exception:
            db.rollback()
            logger.exception("Categorization after sync failed for owner %s", owner_id)
            return 0

    def _provider_failure(
        self, db: Session, item: PlaidItem, error: ProviderSyncError
    ) -> BankSyncOutcome:
        """Classify a provider error and record it on the item.

        Only errors that carry a provider code change the item's health;
        timeouts and network failures leave it as it was.
        """
        kind = classify_provider_error(error)
        message = LOGIN_REQUIRED_MESSAGE if kind == SyncErrorKind.LOGIN_REQUIRED else error.message
        logger.warning(
            "Sync failed for Plaid item %s: %s (%s)",
            item.id, error.message, error.error_code or error.category.value,
        )

        if error.error_code:
            item.status = (
                PlaidItemStatus.LOGIN_REQUIRED.value
                if kind == SyncErrorKind.LOGIN_REQUIRED
                else PlaidItemStatus.ERROR.value
            )
            item.last_error = message
            try:
                db.commit()
            except SQLAlchemyError:
                db.rollback()
                logger.exception("Could not record sync failure on Plaid item %s", item.id)

        return BankSyncOutcome.failed(item.id, kind, message, error_code=error.error_code)

    def sync_all_items(self, db: Session, refresh: bool | None = None) -> list[BankSyncOutcome]:
        """Sync every linked item of every owner, ignoring the cooldown."""
        items = db.query(PlaidItem).order_by(PlaidItem.created_at).all()
        targets = [(item.id, item.owner_id) for item in items]
        outcomes = []
        for item_id, owner_id in targets:
            outcomes.append(self.sync_item(
                db, owner_id, item_id, enforce_rate_limit=False, refresh=refresh
            ))

        failed = sum(1 for o in outcomes if not o.ok)
        logger.info("Synced %d Plaid item(s), %d failed", len(outcomes), failed)
        return outcomes
