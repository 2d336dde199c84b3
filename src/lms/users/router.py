"""Account endpoints for the signed-in user."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from lms.auth.dependencies import get_current_user
from lms.auth.schemas import ChangePasswordRequest, ProfileUpdateRequest, user_payload
from lms.auth.service import change_password
from lms.database import get_session
from lms.db.models import User
from lms.redis_client import get_redis_optional
from lms.users.service import update_profile

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


@router.put("/me/profile")
async def update_my_profile(
    body: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    user = await update_profile(
        db,
        user,
        nickname=body.nickname,
        email=body.email,
        bio=body.bio,
        avatar_url=body.avatar_url,
        redis=get_redis_optional(),
    )
    await db.commit()
    return {"message": "Profile updated successfully", "user": user_payload(user)}


@router.put("/me/password")
async def update_my_password(
    body: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    await change_password(db, user, body.current_password, body.new_password)
    await db.commit()
    return {"message": "Password changed successfully"}
