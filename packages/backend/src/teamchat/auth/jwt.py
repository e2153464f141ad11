"""JWT verification for tokens issued by the session provider.

The provider signs short-lived access tokens whose ``sub`` claim is the
user id. We only verify them here; create_access_token exists for local
development and tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from teamchat.config import settings


class TokenError(Exception):
    """Raised when token creation/verification fails."""


def create_access_token(user_id: str, expires_minutes: Optional[int] = None) -> str:
    """Create a JWT access token signed with the shared secret."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "type": "access",
        "exp": now + timedelta(minutes=expires_minutes or 60),
        "iat": now,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict:
    """Verify and decode a JWT token.

    Returns the payload dict on success.
    Raises TokenError on failure.
    """
    try:
        payload = jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        raise TokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Invalid token: {e}")
    if not payload.get("sub"):
        raise TokenError("Invalid token: missing subject")
    return payload
