"""Verification of access tokens issued by the identity provider."""

import uuid

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config import settings
from errors import Unauthorized

ALGORITHM = "HS256"

_bearer_scheme = HTTPBearer(auto_error=False)


def decode_token(token: str) -> uuid.UUID:
    """Decode and validate an access token, returning the user_id.

    Raises:
        Unauthorized: If the token is invalid, expired, or has no user.
    """
    try:
        payload = jwt.decode(
            token,
            settings.supabase_jwt_secret,
            algorithms=[ALGORITHM],
            audience=settings.jwt_audience,
        )
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token expired")
    except jwt.InvalidTokenError:
        raise Unauthorized("Invalid token")

    try:
        return uuid.UUID(payload["sub"])
    except (KeyError, ValueError, TypeError):
        raise Unauthorized("Invalid token payload")


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> uuid.UUID:
    """FastAPI dependency that extracts user_id from the Bearer token."""
    if credentials is None:
        raise Unauthorized("Not signed in")
    return decode_token(credentials.credentials)
