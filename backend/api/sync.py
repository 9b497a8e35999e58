"""Bank sync API endpoint."""

import logging
import math
import time

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from database import get_db
from services.sync_service import BankSyncOutcome, SyncErrorKind, SyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/plaid", tags=["sync"])


def get_sync_service() -> SyncService:
    """Dependency for injecting the sync service (overridable in tests)."""
    return SyncService()


class SyncRequest(BaseModel):
    plaid_item_id: str


class SyncResponse(BaseModel):
    plaid_item_id: str
    added: int
    modified: int
    removed: int
    merged: int
    categorized: int
    skipped: bool = False
    refresh_failed: bool = False
    had_cursor: bool = False
    provider_returned: dict[str, int] | None = None


_STATUS_BY_KIND = {
    SyncErrorKind.UNAUTHORIZED: 401,
    SyncErrorKind.NOT_FOUND: 404,
    SyncErrorKind.RATE_LIMITED: 429,
    SyncErrorKind.LOGIN_REQUIRED: 400,
    SyncErrorKind.PROVIDER_ERROR: 502,
    SyncErrorKind.INTERNAL_ERROR: 500,
}


def _failure_response(outcome: BankSyncOutcome) -> JSONResponse:
    failure = outcome.failure
    status_code = _STATUS_BY_KIND[failure.kind]
    content = {"detail": failure.message, "error": failure.kind.value}
    headers = {}

    if failure.kind == SyncErrorKind.LOGIN_REQUIRED:
        content["login_required"] = True
        content["plaid_item_id"] = outcome.plaid_item_id
    elif failure.kind == SyncErrorKind.RATE_LIMITED and failure.reset_at is not None:
        retry_after = max(1, math.ceil(failure.reset_at - time.time()))
        headers["Retry-After"] = str(retry_after)
        headers["X-RateLimit-Reset"] = str(int(failure.reset_at))

    return JSONResponse(status_code=status_code, content=content, headers=headers)


@router.post("/sync", response_model=SyncResponse)
def trigger_sync(
    body: SyncRequest,
    db: Session = Depends(get_db),
    sync_service: SyncService = Depends(get_sync_service),
    x_user_id: str | None = Header(default=None),
):
    """Sync transactions and balances for one linked Plaid item.

    Raises:
        HTTPException / error response:
            - 400 Bad Request: the item must be re-linked (``login_required``)
            - 401 Unauthorized: no authenticated user
            - 404 Not Found: the item does not exist for this user
            - 429 Too Many Requests: sync cooldown, with ``Retry-After``
            - 500 Internal Server Error: the ledger update failed
            - 502 Bad Gateway: Plaid or the network failed
    """
    owner_id = x_user_id.strip() if x_user_id else None
    try:
        outcome = sync_service.sync_item(db, owner_id, body.plaid_item_id)
    except Exception as e:
        logger.exception("Unexpected error syncing Plaid item %s", body.plaid_item_id)
        raise HTTPException(status_code=500, detail=f"Sync failed: {e}")

    if not outcome.ok:
        return _failure_response(outcome)

    counts = outcome.counts
    return SyncResponse(
        plaid_item_id=body.plaid_item_id,
        added=counts.added,
        modified=counts.modified,
        removed=counts.removed,
        merged=counts.merged,
        categorized=counts.categorized,
        skipped=counts.skipped,
        refresh_failed=counts.refresh_failed,
        had_cursor=counts.had_cursor,
        provider_returned=counts.provider_returned,
    )
