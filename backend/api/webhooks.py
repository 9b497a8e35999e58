"""Plaid webhook endpoint.

Plaid calls this endpoint when new transaction data is ready or an item
changes state. Every request must carry a valid ``Plaid-Verification``
signature. Once verified, the endpoint always answers 200 so Plaid does
not retry; failures are logged and, for items, recorded on the item.
"""

import json
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from api.sync import get_sync_service
from config import settings
from database import get_db
from integrations.plaid_client import PlaidClient
from integrations.provider_protocol import RECONNECT_ERROR_CODES
from models import PlaidItem, PlaidItemStatus
from services.rate_limiter import RateLimitConfig, RateLimiter, get_rate_limiter
from services.sync_service import SyncService
from services.webhook_verifier import PlaidWebhookVerifier, WebhookVerificationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/plaid", tags=["webhooks"])

SYNC_WEBHOOK_CODES = frozenset(
    {
        "SYNC_UPDATES_AVAILABLE",
        "DEFAULT_UPDATE",
        "INITIAL_UPDATE",
        "HISTORICAL_UPDATE",
        "TRANSACTIONS_REMOVED",
    }
)

_verifier: PlaidWebhookVerifier | None = None


def get_webhook_verifier() -> PlaidWebhookVerifier:
    """Dependency for the process-wide verifier, which caches signing keys."""
    global _verifier
    if _verifier is None:
        _verifier = PlaidWebhookVerifier(PlaidClient())
    return _verifier


async def _raw_body(request: Request) -> bytes:
    return await request.body()


class WebhookResponse(BaseModel):
    received: bool = True
    synced: bool = False


@router.post("/webhook", response_model=WebhookResponse)
def plaid_webhook(
    body: bytes = Depends(_raw_body),
    plaid_verification: str | None = Header(default=None),
    db: Session = Depends(get_db),
    verifier: PlaidWebhookVerifier = Depends(get_webhook_verifier),
    service: SyncService = Depends(get_sync_service),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    """Handle a signed Plaid webhook."""
    if not plaid_verification:
        logger.warning("Plaid webhook without Plaid-Verification header")
        raise HTTPException(status_code=401, detail="Missing verification")
    try:
        verifier.verify(body, plaid_verification)
    except WebhookVerificationError as e:
        logger.warning("Plaid webhook verification failed: %s", e)
        raise HTTPException(status_code=401, detail="Verification failed")

    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON")

    webhook_type = payload.get("webhook_type")
    webhook_code = payload.get("webhook_code")
    external_id = payload.get("item_id")
    logger.info("Plaid webhook %s/%s for item %s", webhook_type, webhook_code, external_id)

    item = db.query(PlaidItem).filter(PlaidItem.item_id == external_id).first()
    if item is None:
        logger.warning("Plaid webhook for unknown item %s", external_id)
        return WebhookResponse()

    if webhook_type == "TRANSACTIONS" and webhook_code in SYNC_WEBHOOK_CODES:
        return WebhookResponse(synced=_sync_from_webhook(db, item, service, limiter))

    if webhook_type == "ITEM":
        if webhook_code == "ERROR":
            _record_item_error(db, item, payload.get("error") or {})
        elif webhook_code == "PENDING_EXPIRATION":
            logger.warning("Plaid item %s consent expires soon", item.id)

    return WebhookResponse()


def _sync_from_webhook(
    db: Session, item: PlaidItem, service: SyncService, limiter: RateLimiter
) -> bool:
    """Run a sync for ``item`` unless its webhook budget is spent."""
    limit = limiter.check(
        f"plaid-webhook-sync:{item.id}",
        RateLimitConfig(
            limit=settings.WEBHOOK_SYNC_RATE_LIMIT,
            window_seconds=settings.WEBHOOK_SYNC_RATE_WINDOW_SECONDS,
        ),
    )
    if not limit.allowed:
        logger.info("Webhook sync rate limited for Plaid item %s, skipping", item.id)
        return False

    outcome = service.sync_item(db, item.owner_id, item.id, enforce_rate_limit=False)
    if not outcome.ok:
        # Provider failures are already recorded on the item by the sync
        logger.warning(
            "Webhook sync failed for Plaid item %s: %s",
            item.id, outcome.failure.message,
        )
        return False
    return not outcome.counts.skipped


def _record_item_error(db: Session, item: PlaidItem, error: dict) -> None:
    error_code = error.get("error_code")
    item.status = (
        PlaidItemStatus.LOGIN_REQUIRED.value
        if error_code in RECONNECT_ERROR_CODES
        else PlaidItemStatus.ERROR.value
    )
    item.last_error = error.get("error_message") or error_code or "Unknown error from Plaid"
    db.commit()
    logger.info("Plaid item %s status set to %s (%s)", item.id, item.status, error_code)
