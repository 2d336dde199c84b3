"""Profile updates."""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lms.achievements.definitions import AchievementType
from lms.achievements.service import award_achievement
from lms.db.models import Profile, User
from lms.errors import ConflictError

logger = structlog.get_logger()


def is_profile_complete(profile: Profile) -> bool:
    return all((profile.nickname, profile.bio, profile.avatar_url))


async def update_profile(
    db: AsyncSession,
    user: User,
    *,
    nickname: str | None = None,
    email: str | None = None,
    bio: str | None = None,
    avatar_url: str | None = None,
    redis: Any | None = None,  # noqa: ANN401
) -> User:
    """Apply the given fields. Completing the profile awards PROFILE_COMPLETE."""
    if email is not None and email.lower() != user.email.lower():
        taken = await db.execute(
            select(User.id).where(func.lower(User.email) == email.lower(), User.id != user.id)
        )
        if taken.first() is not None:
            raise ConflictError("Email already in use")
        user.email = email.lower()

    profile = user.profile
    if profile is None:
        profile = Profile(user_id=user.id)
        db.add(profile)
        user.profile = profile
    if nickname is not None:
        profile.nickname = nickname
    if bio is not None:
        profile.bio = bio
    if avatar_url is not None:
        profile.avatar_url = avatar_url
    await db.flush()

    logger.info("profile_updated", user_id=user.id)
    if is_profile_complete(profile):
        await award_achievement(db, user.id, AchievementType.PROFILE_COMPLETE, redis=redis)
    return user
