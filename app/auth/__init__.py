"""Auth module: GitHub identity and session tokens."""

from app.auth.dependencies import get_current_user, require_admin_key, require_user
from app.auth.github import upsert_github_user
from app.auth.jwt_handler import create_access_token, decode_access_token

__all__ = [
    "create_access_token",
    "decode_access_token",
    "get_current_user",
    "require_admin_key",
    "require_user",
    "upsert_github_user",
]
