"""Delta fetcher - walks the transactions/sync feed to its end."""

import logging
import time

from integrations.provider_protocol import (
    BankDataProvider,
    ErrorCategory,
    ProviderResult,
    ProviderSyncError,
    TransactionDelta,
)

logger = logging.getLogger(__name__)


class TransactionFetchService:
    """Accumulates every page of transaction deltas after a cursor."""

    def fetch_all(
        self,
        client: BankDataProvider,
        access_token: str,
        cursor: str | None,
        deadline: float | None = None,
    ) -> ProviderResult[TransactionDelta]:
        """Fetch pages until the provider reports ``has_more == False``.

        Each page's ``next_cursor`` is used for the following request. Pages
        with no records but ``has_more`` set keep the walk going.

        Args:
            client: Provider client
            access_token: Item access token
            cursor: Stored cursor, or None for a first sync
            deadline: ``time.monotonic()`` value after which the walk gives up

        Returns:
            The accumulated delta, or the first page error. A failed walk
            returns nothing partial; the caller keeps its stored cursor.
        """
        delta = TransactionDelta(next_cursor=cursor)
        current = cursor

        while True:
            timeout = None
            if deadline is not None:
                timeout = deadline - time.monotonic()
                if timeout <= 0:
                    logger.warning(
                        "Transaction fetch timed out after %d page(s)", delta.pages
                    )
                    return ProviderResult.failure(ProviderSyncError(
                        message="Timed out fetching transactions from the provider",
                        category=ErrorCategory.CONNECTION,
                        retriable=True,
                    ))

            page_result = client.transactions_sync(access_token, current, timeout=timeout)
            if not page_result.ok:
                logger.warning(
                    "Transaction fetch failed on page %d: %s",
                    delta.pages + 1, page_result.error,
                )
                return ProviderResult.failure(page_result.error)

            page = page_result.value
            delta.pages += 1
            delta.added.extend(page.added)
            delta.modified.extend(page.modified)
            delta.removed.extend(page.removed)
            delta.next_cursor = page.next_cursor
            current = page.next_cursor

            logger.debug(
                "Fetched page %d: %d added, %d modified, %d removed, has_more=%s",
                delta.pages, len(page.added), len(page.modified),
                len(page.removed), page.has_more,
            )
            if not page.has_more:
                break

        logger.info(
            "Fetched %d page(s): %d added, %d modified, %d removed",
            delta.pages, len(delta.added), len(delta.modified), len(delta.removed),
        )
        return ProviderResult.success(delta)
