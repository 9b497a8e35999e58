"""Categorization rule API endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.dependencies import get_current_user_id
from api.helpers import get_or_404
from database import get_db
from models import CategorizationRule, TransactionCategory
from services.categorization_service import CategorizationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/categorization-rules", tags=["categorization-rules"])


class RuleCreate(BaseModel):
    pattern: str = Field(min_length=1)
    category_id: str
    apply_to_existing: bool = False


class RuleUpdate(BaseModel):
    pattern: str | None = Field(default=None, min_length=1)
    category_id: str | None = None


class RuleOrder(BaseModel):
    rule_ids: list[str]


class RuleResponse(BaseModel):
    id: str
    pattern: str
    category_id: str
    category_name: str | None = None
    position: int


class RuleCreateResponse(BaseModel):
    rule: RuleResponse
    applied_count: int


class ApplyResponse(BaseModel):
    categorized: int
    invalid_rule_ids: list[str]


def _rule_response(rule: CategorizationRule) -> RuleResponse:
    return RuleResponse(
        id=rule.id,
        pattern=rule.pattern,
        category_id=rule.category_id,
        category_name=rule.category.name if rule.category else None,
        position=rule.position,
    )


@router.get("", response_model=list[RuleResponse])
def list_rules(
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_user_id),
):
    """List rules in evaluation order."""
    return [_rule_response(r) for r in CategorizationService().list_rules(db, owner_id)]


@router.post("", response_model=RuleCreateResponse, status_code=201)
def create_rule(
    body: RuleCreate,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_user_id),
):
    """Create a rule at the end of the order, optionally applying it right away."""
    get_or_404(db, TransactionCategory, body.category_id, owner_id, "Category not found")
    try:
        rule, applied = CategorizationService().create_rule(
            db, owner_id, body.pattern, body.category_id, body.apply_to_existing
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    db.commit()
    db.refresh(rule)
    return RuleCreateResponse(rule=_rule_response(rule), applied_count=applied)


@router.put("/order", response_model=list[RuleResponse])
def reorder_rules(
    body: RuleOrder,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_user_id),
):
    """Replace the evaluation order."""
    try:
        rules = CategorizationService().reorder_rules(db, owner_id, body.rule_ids)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    db.commit()
    return [_rule_response(r) for r in rules]


@router.post("/apply", response_model=ApplyResponse)
def apply_rules(
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_user_id),
):
    """Run all rules over the owner's uncategorized transactions."""
    result = CategorizationService().apply_rules(db, owner_id)
    db.commit()
    return ApplyResponse(
        categorized=result.categorized,
        invalid_rule_ids=[r.rule_id for r in result.invalid_rules],
    )


@router.patch("/{rule_id}", response_model=RuleResponse)
def update_rule(
    rule_id: str,
    body: RuleUpdate,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_user_id),
):
    """Change a rule's pattern or category."""
    rule = get_or_404(db, CategorizationRule, rule_id, owner_id, "Rule not found")
    if body.category_id is not None:
        get_or_404(db, TransactionCategory, body.category_id, owner_id, "Category not found")
    try:
        CategorizationService().update_rule(db, rule, body.pattern, body.category_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    db.commit()
    db.refresh(rule)
    return _rule_response(rule)


@router.delete("/{rule_id}")
def delete_rule(
    rule_id: str,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_user_id),
):
    """Delete a rule; categories it already assigned are kept."""
    rule = get_or_404(db, CategorizationRule, rule_id, owner_id, "Rule not found")
    CategorizationService().delete_rule(db, rule)
    db.commit()
    return {"status": "ok", "id": rule_id}
