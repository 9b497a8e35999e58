"""Shared FastAPI dependencies."""

from fastapi import Header, HTTPException


def get_current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """Return the authenticated owner id.

    Session handling lives in the upstream auth layer, which forwards the
    signed-in user as ``X-User-Id``.

    Raises:
        HTTPException: 401 if no user is attached to the request.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_id.strip()
