"""FastAPI dependencies for resolving the calling user.

A missing or invalid session never rejects a request here: the caller is
simply anonymous. Routes that need an owner depend on require_user.
"""

from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.jwt_handler import decode_access_token
from app.config import get_settings
from app.database import get_db_session
from app.models_auth import User

logger = logging.getLogger(__name__)


def _extract_token(request: Request) -> str | None:
    """Bearer header first, then the session cookie."""
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[len("Bearer "):]
    return request.cookies.get(get_settings().SESSION_COOKIE_NAME)


async def get_current_user(
    request: Request,
    session: AsyncSession = Depends(get_db_session),
) -> User | None:
    """Resolve the calling user, or None for anonymous callers.

    Invalid or expired tokens and unknown or deactivated users are logged
    and treated as anonymous.
    """
    token = _extract_token(request)
    if not token:
        return None

    try:
        user_id = decode_access_token(token)
    except ValueError as e:
        logger.info(f"Ignoring session token: {e}")
        return None

    user = await session.get(User, user_id)
    if user is None or not user.is_active:
        logger.info(f"Session token for unknown or inactive user {user_id}")
        return None
    return user


async def require_user(
    user: User | None = Depends(get_current_user),
) -> User:
    """Resolve the calling user or answer 401."""
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def require_admin_key(request: Request) -> None:
    """Verify the X-Admin-Key header matches ADMIN_API_KEY.

    Returns 403 if the key is empty (disabled) or doesn't match.
    """
    settings = get_settings()
    if not settings.ADMIN_API_KEY:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Session endpoints are disabled (ADMIN_API_KEY not set)",
        )

    provided = request.headers.get("X-Admin-Key", "")
    if provided != settings.ADMIN_API_KEY:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid admin key",
        )
