"""Bank transaction API endpoints."""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.dependencies import get_current_user_id
from api.helpers import get_or_404
from database import get_db
from models import BankTransaction
from services.transaction_service import TransactionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/transactions", tags=["transactions"])


class BatchDeleteRequest(BaseModel):
    transaction_ids: list[str] = Field(min_length=1)


class DeleteResponse(BaseModel):
    deleted: int


@router.delete("/{transaction_id}", response_model=DeleteResponse)
def delete_transaction(
    transaction_id: str,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_user_id),
):
    """Delete one transaction; Plaid-sourced rows stay deleted across syncs."""
    get_or_404(db, BankTransaction, transaction_id, owner_id, "Transaction not found")
    deleted = TransactionService.delete_transactions(db, owner_id, [transaction_id])
    db.commit()
    return DeleteResponse(deleted=deleted)


@router.post("/batch-delete", response_model=DeleteResponse)
def batch_delete_transactions(
    body: BatchDeleteRequest,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_user_id),
):
    """Delete several transactions at once. Unknown ids are ignored."""
    deleted = TransactionService.delete_transactions(db, owner_id, body.transaction_ids)
    db.commit()
    return DeleteResponse(deleted=deleted)
