"""Auth API endpoints: sessions from GitHub sign-in, user profile, logout.

Endpoints:
    POST /api/v1/auth/github  - Find-or-create user from a GitHub profile, open a session
    GET  /api/v1/auth/me      - Return current user profile
    POST /api/v1/auth/logout  - Clear the session cookie
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user, require_admin_key
from app.auth.github import upsert_github_user
from app.auth.jwt_handler import create_access_token
from app.auth.schemas import GitHubProfile, SessionResponse, UserResponse
from app.config import get_settings
from app.database import get_db_session
from app.models_auth import User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/github", response_model=SessionResponse)
async def github_sign_in(
    profile: GitHubProfile,
    response: Response,
    session: AsyncSession = Depends(get_db_session),
    _admin: None = Depends(require_admin_key),
) -> SessionResponse:
    """Open a session for a GitHub profile verified by the sign-in frontend.

    Requires X-Admin-Key header. Sets the session cookie and returns the
    same token for Bearer use.
    """
    user = await upsert_github_user(session, profile)
    await session.commit()

    settings = get_settings()
    token = create_access_token(user.id)
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        token,
        max_age=settings.JWT_ACCESS_EXPIRE_MINUTES * 60,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )
    logger.info(f"Session opened for {user.username}")

    return SessionResponse(
        access_token=token,
        expires_in=settings.JWT_ACCESS_EXPIRE_MINUTES * 60,
        user=UserResponse.model_validate(user),
    )


@router.get("/me", response_model=UserResponse)
async def get_me(
    user: User | None = Depends(get_current_user),
) -> UserResponse:
    """Return the current user's profile."""
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )

    return UserResponse.model_validate(user)


@router.post("/logout", status_code=200)
async def logout(response: Response) -> dict[str, str]:
    """Clear the session cookie.

    Bearer tokens stay valid until they expire.
    """
    response.delete_cookie(get_settings().SESSION_COOKIE_NAME)
    return {"detail": "Logged out"}
