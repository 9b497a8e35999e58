"""Transaction category API endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.dependencies import get_current_user_id
from api.helpers import get_or_404
from database import get_db
from models import TransactionCategory
from services.category_service import CategoryInUseError, CategoryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/categories", tags=["categories"])


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1)
    color: str | None = None


class CategoryUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    color: str | None = None


class CategoryResponse(BaseModel):
    id: str
    name: str
    color: str | None = None
    transaction_count: int = 0


def _category_response(category: TransactionCategory, count: int = 0) -> CategoryResponse:
    return CategoryResponse(
        id=category.id,
        name=category.name,
        color=category.color,
        transaction_count=count,
    )


@router.get("", response_model=list[CategoryResponse])
def list_categories(
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_user_id),
):
    """List the owner's categories with how many transactions use each."""
    return [
        _category_response(category, count)
        for category, count in CategoryService.list_categories(db, owner_id)
    ]


@router.post("", response_model=CategoryResponse, status_code=201)
def create_category(
    body: CategoryCreate,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_user_id),
):
    """Create a category."""
    try:
        category = CategoryService.create_category(db, owner_id, body.name, body.color)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    db.commit()
    db.refresh(category)
    return _category_response(category)


@router.patch("/{category_id}", response_model=CategoryResponse)
def update_category(
    category_id: str,
    body: CategoryUpdate,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_user_id),
):
    """Rename or recolor a category."""
    category = get_or_404(db, TransactionCategory, category_id, owner_id, "Category not found")
    try:
        CategoryService.update_category(db, category, body.name, body.color)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    db.commit()
    db.refresh(category)
    return _category_response(category)


@router.delete("/{category_id}")
def delete_category(
    category_id: str,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_user_id),
):
    """Delete an unused category and the rules that assign it."""
    category = get_or_404(db, TransactionCategory, category_id, owner_id, "Category not found")
    try:
        rules_deleted = CategoryService.delete_category(db, category)
    except CategoryInUseError as e:
        raise HTTPException(status_code=409, detail=str(e))
    db.commit()
    logger.info("Deleted category %s and %d rule(s)", category_id, rules_deleted)
    return {"status": "ok", "id": category_id, "rules_deleted": rules_deleted}
