"""Minimal auth dependency.

Stub implementation that reads the owner id from a bearer token or uses a test
default. Real token verification belongs in front of this service.
"""

import uuid
from typing import Annotated

from fastapi import Header, HTTPException, status

from backend.docchat.db.context import RequestContext

DEFAULT_OWNER_ID = uuid.UUID("00000000-0000-0000-0000-000000000002")


async def get_current_context(
    authorization: Annotated[str | None, Header()] = None,
) -> RequestContext:
    """Extract request context from authorization header.

    Accepts "Bearer <owner_id>" where owner_id is a UUID, or no header at all
    (test default owner).

    Args:
        authorization: Authorization header (e.g., "Bearer <token>")

    Returns:
        RequestContext with owner_id

    Raises:
        HTTPException: If authorization is invalid
    """
    if not authorization:
        return RequestContext(owner_id=DEFAULT_OWNER_ID)

    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = authorization[7:]  # Strip "Bearer "

    try:
        return RequestContext(owner_id=uuid.UUID(token.strip()))
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid bearer token (expected owner UUID)",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
