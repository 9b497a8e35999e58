"""Plaid Link API endpoints.

Provides the server-side endpoints for the Plaid Link browser-based
authentication flow: creating link tokens (including update mode for
re-linking), exchanging public tokens, and managing linked institutions
(PlaidItems).
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.orm import Session

from api.dependencies import get_current_user_id
from api.helpers import get_or_404
from database import get_db
from integrations.plaid_client import PlaidClient
from models import BankAccount, PlaidItem, PlaidItemStatus
from services.bank_account_service import BankAccountService
from services.sync_service import SyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/plaid", tags=["plaid"])


def _get_plaid_client() -> PlaidClient:
    """Dependency for injecting the Plaid client (overridable in tests)."""
    return PlaidClient()


# ------------------------------------------------------------------
# Request / Response schemas
# ------------------------------------------------------------------


class LinkTokenRequest(BaseModel):
    plaid_item_id: str | None = None  # set to open Link in update mode


class LinkTokenResponse(BaseModel):
    link_token: str


class ExchangeTokenRequest(BaseModel):
    public_token: str
    institution_id: str | None = None
    institution_name: str | None = None


class ExchangeTokenResponse(BaseModel):
    id: str
    item_id: str
    institution_name: str | None = None
    accounts_created: int = 0


class PlaidItemResponse(BaseModel):
    id: str
    item_id: str
    institution_id: str | None = None
    institution_name: str | None = None
    status: str
    last_error: str | None = None
    last_successful_sync: str | None = None
    account_count: int = 0
    created_at: str | None = None


def _item_response(item: PlaidItem, account_count: int) -> PlaidItemResponse:
    return PlaidItemResponse(
        id=item.id,
        item_id=item.item_id,
        institution_id=item.institution_id,
        institution_name=item.institution_name,
        status=item.status,
        last_error=item.last_error,
        last_successful_sync=(
            item.last_successful_sync.isoformat() if item.last_successful_sync else None
        ),
        account_count=account_count,
        created_at=item.created_at.isoformat() if item.created_at else None,
    )


def _account_count(db: Session, plaid_item_id: str) -> int:
    return (
        db.query(func.count(BankAccount.id))
        .filter(BankAccount.plaid_item_id == plaid_item_id)
        .scalar()
    )


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------


@router.post("/link-token", response_model=LinkTokenResponse)
def create_link_token(
    body: LinkTokenRequest | None = None,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_user_id),
    client: PlaidClient = Depends(_get_plaid_client),
):
    """Create a Plaid Link token for the frontend.

    With ``plaid_item_id`` the token opens Link in update mode so the user
    can repair an item that needs re-authentication.
    """
    if not client.is_configured():
        raise HTTPException(status_code=400, detail="Plaid is not configured")

    access_token = None
    if body and body.plaid_item_id:
        item = get_or_404(db, PlaidItem, body.plaid_item_id, owner_id, "Plaid item not found")
        access_token = item.access_token

    try:
        link_token = client.create_link_token(owner_id, access_token=access_token)
        return LinkTokenResponse(link_token=link_token)
    except Exception as e:
        error_detail = str(e)
        # Surface actionable hint for the most common error
        if "INVALID_API_KEYS" in error_detail:
            hint = (
                "Plaid rejected the credentials. Check that PLAID_ENVIRONMENT "
                "matches your keys (sandbox or production). "
                "Each environment has different secrets."
            )
            logger.error("Plaid INVALID_API_KEYS: %s", hint)
            raise HTTPException(status_code=400, detail=hint)
        logger.error("Failed to create Plaid link token: %s", e)
        raise HTTPException(status_code=500, detail="Failed to create link token")


@router.post("/exchange-token", response_model=ExchangeTokenResponse)
def exchange_token(
    body: ExchangeTokenRequest,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_user_id),
    client: PlaidClient = Depends(_get_plaid_client),
):
    """Exchange a Plaid Link public_token, store the Item and its accounts."""
    if not client.is_configured():
        raise HTTPException(status_code=400, detail="Plaid is not configured")

    try:
        result = client.exchange_public_token(body.public_token)
    except Exception as e:
        logger.error("Failed to exchange Plaid token: %s", e)
        raise HTTPException(status_code=500, detail="Failed to exchange token")

    item_id = result["item_id"]
    access_token = result["access_token"]

    # Upsert: update existing item or create new one
    item = db.query(PlaidItem).filter(PlaidItem.item_id == item_id).first()
    if item and item.owner_id != owner_id:
        raise HTTPException(status_code=409, detail="Item is linked to another user")
    if item:
        item.access_token = access_token
        item.status = PlaidItemStatus.OK.value
        item.last_error = None
        if body.institution_id:
            item.institution_id = body.institution_id
        if body.institution_name:
            item.institution_name = body.institution_name
        logger.info("Updated PlaidItem %s", item_id)
    else:
        item = PlaidItem(
            owner_id=owner_id,
            item_id=item_id,
            access_token=access_token,
            institution_id=body.institution_id,
            institution_name=body.institution_name,
        )
        db.add(item)
        logger.info("Created PlaidItem %s for %s", item_id, body.institution_name)
    db.flush()

    # Accounts can be created on a later re-link if this call fails
    accounts_created = 0
    remote = client.get_accounts(access_token)
    if remote.ok:
        created = BankAccountService.create_accounts_for_item(db, owner_id, item.id, remote.value)
        accounts_created = len(created)
    else:
        logger.warning("Could not fetch accounts for Plaid item %s: %s", item_id, remote.error)

    db.commit()

    return ExchangeTokenResponse(
        id=item.id,
        item_id=item_id,
        institution_name=item.institution_name,
        accounts_created=accounts_created,
    )


@router.get("/items", response_model=list[PlaidItemResponse])
def list_items(
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_user_id),
):
    """List the owner's linked Plaid Items with their health."""
    items = (
        db.query(PlaidItem)
        .filter(PlaidItem.owner_id == owner_id)
        .order_by(PlaidItem.created_at.desc())
        .all()
    )
    return [_item_response(item, _account_count(db, item.id)) for item in items]


@router.post("/items/{plaid_item_id}/reconnected", response_model=PlaidItemResponse)
def mark_item_reconnected(
    plaid_item_id: str,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_user_id),
):
    """Clear the error state after the user completed update-mode Link."""
    item = get_or_404(db, PlaidItem, plaid_item_id, owner_id, "Plaid item not found")
    item.status = PlaidItemStatus.OK.value
    item.last_error = None
    db.commit()
    db.refresh(item)
    logger.info("PlaidItem %s reconnected", item.item_id)
    return _item_response(item, _account_count(db, item.id))


@router.delete("/items/{plaid_item_id}")
def remove_item(
    plaid_item_id: str,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_user_id),
    client: PlaidClient = Depends(_get_plaid_client),
):
    """Unlink a Plaid Item (revokes token with Plaid, then deletes locally).

    Refused while bank accounts still reference the item or a sync of it
    is running.
    """
    item = get_or_404(db, PlaidItem, plaid_item_id, owner_id, "Plaid item not found")
    if SyncService.is_item_syncing(item.id):
        raise HTTPException(
            status_code=409, detail="A sync of this institution is in progress. Try again shortly."
        )

    account_count = _account_count(db, item.id)
    if account_count:
        raise HTTPException(
            status_code=409,
            detail=(
                f"Cannot unlink: {account_count} bank account(s) are still linked "
                "to this institution. Delete them first."
            ),
        )

    # Revoke the access token with Plaid; proceed with local delete even if this fails
    try:
        client.remove_item(item.access_token)
    except Exception as e:
        logger.warning("Failed to remove Plaid item remotely (removing locally anyway): %s", e)

    external_id = item.item_id
    db.delete(item)
    db.commit()
    logger.info("Deleted PlaidItem %s", external_id)
    return {"status": "ok", "id": plaid_item_id}
