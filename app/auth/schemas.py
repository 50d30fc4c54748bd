"""Pydantic schemas for the auth API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class GitHubProfile(BaseModel):
    """Subset of the GitHub ``/user`` payload used for sign-in."""

    id: int | str = Field(..., description="GitHub account id")
    login: str = Field(..., min_length=1)
    name: str | None = None
    email: str | None = None
    html_url: str | None = None
    avatar_url: str | None = None


class UserResponse(BaseModel):
    """Public user profile."""

    id: str
    username: str
    display_name: str | None = None
    email: str | None = None
    profile_url: str | None = None
    avatar_url: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class SessionResponse(BaseModel):
    """Session token issued on sign-in."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Token lifetime in seconds")
    user: UserResponse
