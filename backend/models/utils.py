"""Shared utilities for ORM models."""

import uuid
from datetime import datetime, timezone


def generate_uuid() -> str:
    """Generate a UUID string for a primary key."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)
