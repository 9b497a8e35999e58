"""Shared API helpers for route handlers."""

from typing import TypeVar

from fastapi import HTTPException
from sqlalchemy.orm import Session

from database import Base

T = TypeVar("T", bound=Base)


def get_or_404(
    db: Session,
    model: type[T],
    entity_id: str,
    owner_id: str,
    detail: str = "Not found",
) -> T:
    """Fetch one of the owner's entities by primary key or raise 404.

    Another owner's rows are reported as missing rather than forbidden.

    Args:
        db: Database session.
        model: SQLAlchemy model class with an ``owner_id`` column.
        entity_id: Primary key value.
        owner_id: Authenticated owner.
        detail: Error message for the 404 response.

    Raises:
        HTTPException: 404 if the entity doesn't exist for this owner.
    """
    entity = (
        db.query(model)
        .filter(model.id == entity_id, model.owner_id == owner_id)
        .first()
    )
    if not entity:
        raise HTTPException(status_code=404, detail=detail)
    return entity
