"""Bank account API endpoints."""

import logging
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from api.dependencies import get_current_user_id
from api.helpers import get_or_404
from database import get_db
from models import BankAccount
from services.bank_account_service import BankAccountService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bank-accounts", tags=["bank-accounts"])


class BankAccountResponse(BaseModel):
    id: str
    name: str
    mask: str | None = None
    type: str
    plaid_item_id: str | None = None
    current_balance: Decimal | None = None
    last_synced_at: str | None = None


@router.get("", response_model=list[BankAccountResponse])
def list_bank_accounts(
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_user_id),
):
    """List the owner's bank accounts with their last synced balance."""
    accounts = (
        db.query(BankAccount)
        .filter(BankAccount.owner_id == owner_id)
        .order_by(BankAccount.name)
        .all()
    )
    return [
        BankAccountResponse(
            id=a.id,
            name=a.name,
            mask=a.mask,
            type=a.type,
            plaid_item_id=a.plaid_item_id,
            current_balance=a.current_balance,
            last_synced_at=a.last_synced_at.isoformat() if a.last_synced_at else None,
        )
        for a in accounts
    ]


@router.delete("/{account_id}")
def delete_bank_account(
    account_id: str,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_user_id),
):
    """Delete a bank account together with its transactions."""
    account = get_or_404(db, BankAccount, account_id, owner_id, "Bank account not found")
    deleted = BankAccountService.delete_account(db, account)
    db.commit()
    return {"status": "ok", "id": account_id, "transactions_deleted": deleted}
