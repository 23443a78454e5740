"""FastAPI dependency for the caller identity forwarded by the auth middleware."""

import uuid
from dataclasses import dataclass

from fastapi import Header, HTTPException, status


@dataclass(frozen=True)
class RequestUser:
    """User already authenticated upstream, read from forwarded headers."""

    id: uuid.UUID
    email: str


async def get_request_user(
    x_user_id: str | None = Header(default=None),
    x_user_email: str | None = Header(default=None),
) -> RequestUser:
    """Return the user identified by ``x-user-id`` / ``x-user-email``.

    Raises:
        HTTPException 401: if either header is missing or the ID is not a UUID.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not get user session.",
    )
    if not x_user_id or not x_user_email:
        raise credentials_exception

    try:
        user_id = uuid.UUID(x_user_id)
    except ValueError:
        raise credentials_exception from None

    return RequestUser(id=user_id, email=x_user_email)
