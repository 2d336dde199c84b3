"""Achievement awarding with duplicate prevention and notification."""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lms.achievements.definitions import (
    ACHIEVEMENT_DEFINITIONS,
    KEYED_TYPES,
    TIME_THRESHOLDS,
    AchievementType,
    AwardKey,
    definitions_payload,
    resolve_type,
)
from lms.db.models import Achievement, LearningSession, Profile
from lms.errors import NotFoundError
from lms.notifications.service import ACHIEVEMENT, create_notification
from lms.utils import isoformat, utcnow

logger = structlog.get_logger()


def serialize_achievement(achievement: Achievement) -> dict[str, Any]:
    return {
        "id": achievement.id,
        "type": achievement.type,
        "title": achievement.title,
        "description": achievement.description,
        "icon": achievement.icon,
        "rarity": achievement.rarity,
        "metadata": achievement.achievement_metadata or {},
        "earnedAt": isoformat(achievement.earned_at),
    }


async def has_achievement(db: AsyncSession, user_id: str, kind: AchievementType, award_key: str = "") -> bool:
    result = await db.execute(
        select(Achievement.id).where(
            Achievement.user_id == user_id,
            Achievement.type == kind.value,
            Achievement.award_key == award_key,
        )
    )
    return result.first() is not None


async def award_achievement(
    db: AsyncSession,
    user_id: str,
    kind: AchievementType | str,
    key: AwardKey | None = None,
    redis: Any | None = None,  # noqa: ANN401
) -> Achievement | None:
    """Award an achievement.

    Returns the new Achievement, or None when the type is unknown, the user
    already holds this instance, or persistence failed. Failures roll back a
    savepoint and are logged; they never propagate to the caller.
    """
    achievement_type = resolve_type(kind)
    if achievement_type is None:
        logger.warning("achievement_type_unknown", kind=str(kind))
        return None

    if achievement_type in KEYED_TYPES:
        if key is None or key.type is not achievement_type:
            logger.warning("achievement_key_mismatch", type=achievement_type.value, key=repr(key))
            return None
        award_key, metadata = key.award_key, key.metadata
    else:
        award_key, metadata = "", {}

    definition = ACHIEVEMENT_DEFINITIONS[achievement_type]

    try:
        async with db.begin_nested():
            if await has_achievement(db, user_id, achievement_type, award_key):
                return None

            achievement = Achievement(
                user_id=user_id,
                type=achievement_type.value,
                title=definition.title,
                description=definition.description,
                icon=definition.icon,
                rarity=definition.rarity,
                award_key=award_key,
                achievement_metadata=metadata,
                earned_at=utcnow(),
            )
            db.add(achievement)
            await db.flush()

            await create_notification(
                db,
                user_id,
                ACHIEVEMENT,
                title=f"{definition.icon} Achievement unlocked!",
                message=f"You earned the '{definition.title}' badge: {definition.description}",
                icon=definition.icon,
                metadata={"achievementId": achievement.id, "type": achievement_type.value},
                redis=redis,
            )
    except Exception:
        logger.warning(
            "achievement_award_failed",
            user_id=user_id,
            type=achievement_type.value,
            award_key=award_key,
            exc_info=True,
        )
        return None

    logger.info("achievement_awarded", user_id=user_id, type=achievement_type.value, award_key=award_key)
    return achievement


async def total_learning_seconds(db: AsyncSession, user_id: str) -> int:
    """Sum of finalized session durations."""
    result = await db.execute(
        select(func.coalesce(func.sum(LearningSession.duration), 0)).where(
            LearningSession.user_id == user_id,
            LearningSession.duration.is_not(None),
        )
    )
    return int(result.scalar() or 0)


async def check_time_achievements(
    db: AsyncSession,
    user_id: str,
    redis: Any | None = None,  # noqa: ANN401
) -> list[Achievement]:
    """Award every time badge whose threshold the user's total has reached."""
    total_minutes = await total_learning_seconds(db, user_id) // 60
    awarded: list[Achievement] = []
    for threshold, kind in TIME_THRESHOLDS:
        if total_minutes < threshold:
            break
        achievement = await award_achievement(db, user_id, kind, redis=redis)
        if achievement is not None:
            awarded.append(achievement)
    return awarded


async def list_achievements(db: AsyncSession, user_id: str) -> dict[str, Any]:
    """Earned achievements (newest first), learning minutes, and the badge catalogue."""
    result = await db.execute(
        select(Achievement)
        .where(Achievement.user_id == user_id)
        .order_by(Achievement.earned_at.desc())
    )
    return {
        "achievements": [serialize_achievement(a) for a in result.scalars().all()],
        "totalLearningMinutes": await total_learning_seconds(db, user_id) // 60,
        "availableBadges": definitions_payload(),
    }


async def set_selected_badge(db: AsyncSession, user_id: str, achievement_id: str) -> Profile:
    """Display one of the user's own achievements on their profile."""
    result = await db.execute(
        select(Achievement).where(
            Achievement.id == achievement_id,
            Achievement.user_id == user_id,
        )
    )
    if result.scalar_one_or_none() is None:
        raise NotFoundError("Achievement not found")

    profile = (await db.execute(select(Profile).where(Profile.user_id == user_id))).scalar_one_or_none()
    if profile is None:
        profile = Profile(user_id=user_id)
        db.add(profile)
    profile.selected_badge = achievement_id
    await db.flush()
    return profile
