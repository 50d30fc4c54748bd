"""GitHub identity: find-or-create users from a verified GitHub profile.

The OAuth redirect exchange happens in the sign-in frontend; this module
only receives the profile it obtained.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.schemas import GitHubProfile
from app.models import utcnow
from app.models_auth import User

logger = logging.getLogger(__name__)


async def upsert_github_user(session: AsyncSession, profile: GitHubProfile) -> User:
    """Find the user for a GitHub account, creating it on first sign-in.

    Profile fields are refreshed on every sign-in.

    Args:
        session: Database session (caller must commit).
        profile: Verified GitHub profile.

    Returns:
        The user, flushed so its id is set.
    """
    github_id = str(profile.id)
    result = await session.execute(select(User).where(User.github_id == github_id))
    user = result.scalar_one_or_none()

    if user is None:
        user = User(github_id=github_id, username=profile.login)
        session.add(user)
        logger.info(f"GitHub user created: {profile.login}")

    user.username = profile.login
    user.display_name = profile.name or profile.login
    user.email = profile.email
    user.profile_url = profile.html_url
    user.avatar_url = profile.avatar_url
    user.last_login_at = utcnow()

    await session.flush()
    return user
