"""
Auth utilities for the teamgate API.

Validates HS256 bearer JWTs and extracts the acting user from the request.
Falls back to the X-User-Id header when no JWT secret is configured (tests,
local development). Team context comes from the X-Team-Id header.
"""
from fastapi import Depends, Header, HTTPException, Request
from typing import Optional
import jwt
import logging

from teamgate.core.config import settings
from teamgate.models.user import User

logger = logging.getLogger(__name__)


def verify_jwt(token: str) -> dict:
    """
    Verify a bearer JWT and return its claims.

    Raises:
        HTTPException 401: Invalid or expired token
    """
    options = {"verify_signature": True, "verify_exp": True, "verify_aud": bool(settings.JWT_AUDIENCE)}
    try:
        claims = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Invalid token: {e}")
        raise HTTPException(status_code=401, detail="Invalid token")

    if not claims.get("sub"):
        raise HTTPException(status_code=401, detail="Token has no subject")
    return claims


async def get_current_user_id(
    request: Request,
    x_user_id: Optional[str] = Header(None, description="Fallback user ID when JWT auth is not configured"),
) -> str:
    """
    Extract current user ID from request context.

    Priority:
    1. Bearer JWT from Authorization header (when JWT_SECRET is set)
    2. X-User-Id header (only when JWT_SECRET is unset)
    3. Raise 401 Unauthorized

    The user row is upserted so memberships can reference it.
    """
    from teamgate.features.users.service import get_or_create_user

    auth_header = request.headers.get("Authorization", "")
    if settings.JWT_SECRET:
        if not auth_header.startswith("Bearer "):
            raise HTTPException(status_code=401, detail="Missing Authorization (Bearer JWT) header")
        claims = verify_jwt(auth_header[7:])
        user_id = claims["sub"]
        get_or_create_user(user_id, email=claims.get("email"), display_name=claims.get("name"))
        return user_id

    if x_user_id:
        get_or_create_user(x_user_id, email=request.headers.get("X-User-Email"))
        return x_user_id

    raise HTTPException(
        status_code=401,
        detail="Missing Authorization (Bearer JWT) or X-User-Id header",
    )


async def get_current_user(user_id: str = Depends(get_current_user_id)) -> User:
    from teamgate.features.users.service import get_user

    user = get_user(user_id)
    if not user:
        raise HTTPException(status_code=401, detail="Unknown user")
    return user


async def get_team_context(
    x_team_id: Optional[str] = Header(None, description="Team to act in; defaults to the user's current team"),
) -> Optional[int]:
    """Explicit team context from X-Team-Id, or None to use the stored default."""
    if x_team_id is None or x_team_id.strip() == "":
        return None
    try:
        return int(x_team_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="X-Team-Id must be an integer")


async def require_superuser(user: User = Depends(get_current_user)) -> User:
    if not user.is_superuser:
        raise HTTPException(status_code=403, detail="Superuser access required")
    return user
