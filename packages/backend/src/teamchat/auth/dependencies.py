"""FastAPI auth dependencies.

Used as Depends() in routers to extract and validate the caller from a
Bearer token. Authentication failures stop the request with 401 before
any database work happens.
"""

import uuid
from typing import Optional

from fastapi import Depends, Header, HTTPException

from teamchat.auth.jwt import TokenError, verify_token


class CurrentIdentity:
    """The authenticated user making the request."""

    def __init__(self, user_id: uuid.UUID):
        self.user_id = user_id


def identity_from_token(token: str) -> CurrentIdentity:
    """Verify a token and build the identity. Raises TokenError."""
    payload = verify_token(token)
    try:
        return CurrentIdentity(user_id=uuid.UUID(payload["sub"]))
    except ValueError:
        raise TokenError("Invalid token: subject is not a user id")


async def get_current_user_optional(
    authorization: Optional[str] = Header(None),
) -> Optional[CurrentIdentity]:
    """Soft auth: None when no Bearer token is present."""
    if not authorization or not authorization.startswith("Bearer "):
        return None
    try:
        return identity_from_token(authorization[7:])
    except TokenError as e:
        raise HTTPException(
            status_code=401,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_current_user(
    identity: Optional[CurrentIdentity] = Depends(get_current_user_optional),
) -> CurrentIdentity:
    """Hard auth: 401 when unauthenticated."""
    if not identity:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity
