"""Request/response schemas for authentication and account endpoints."""

from __future__ import annotations

from typing import Any

from pydantic import EmailStr, Field, field_validator

from lms.db.models import User
from lms.schemas import CamelModel
from lms.utils import isoformat


class RegisterRequest(CamelModel):
    email: EmailStr
    username: str = Field(..., min_length=3, max_length=64, pattern=r"^[A-Za-z0-9_.-]+$")
    password: str = Field(..., min_length=1, max_length=128)
    nickname: str | None = Field(None, max_length=64)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower().strip()


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class ProfileUpdateRequest(CamelModel):
    """Partial profile update; omitted fields stay unchanged."""

    nickname: str | None = Field(None, max_length=64)
    email: EmailStr | None = None
    bio: str | None = Field(None, max_length=1000)
    avatar_url: str | None = Field(None, max_length=2048)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=1, max_length=128)


def user_payload(user: User) -> dict[str, Any]:
    """Public account view; never includes the password hash."""
    profile = user.profile
    return {
        "id": user.id,
        "email": user.email,
        "username": user.username,
        "role": user.role,
        "createdAt": isoformat(user.created_at),
        "profile": None
        if profile is None
        else {
            "nickname": profile.nickname,
            "bio": profile.bio,
            "avatarUrl": profile.avatar_url,
            "selectedBadge": profile.selected_badge,
        },
    }
