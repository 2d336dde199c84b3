"""Notification creation and delivery.

Notifications are persisted first, then pushed to the user's Redis channel
(``ws:user:<id>``) for any realtime consumer. Push failures never affect the
stored notification.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.models import Notification
from lms.utils import isoformat, utcnow

logger = logging.getLogger(__name__)

LESSON_COMPLETE = "LESSON_COMPLETE"
CHAPTER_COMPLETE = "CHAPTER_COMPLETE"
MODULE_COMPLETE = "MODULE_COMPLETE"
ACHIEVEMENT = "ACHIEVEMENT"
SYSTEM = "SYSTEM"

VALID_TYPES = frozenset({LESSON_COMPLETE, CHAPTER_COMPLETE, MODULE_COMPLETE, ACHIEVEMENT, SYSTEM})

LIST_LIMIT = 50


def serialize_notification(notification: Notification) -> dict[str, Any]:
    return {
        "id": notification.id,
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "icon": notification.icon,
        "metadata": notification.notification_metadata or {},
        "read": notification.read,
        "createdAt": isoformat(notification.created_at),
    }


async def create_notification(
    db: AsyncSession,
    user_id: str,
    type_: str,
    title: str,
    message: str,
    icon: str | None = None,
    metadata: dict[str, Any] | None = None,
    redis: Any | None = None,  # noqa: ANN401
) -> Notification:
    """Persist a notification and push it to the user's channel."""
    if type_ not in VALID_TYPES:
        raise ValueError(f"Invalid notification type: {type_}. Must be one of {sorted(VALID_TYPES)}")

    notification = Notification(
        user_id=user_id,
        type=type_,
        title=title,
        message=message,
        icon=icon,
        notification_metadata=metadata or {},
        read=False,
        created_at=utcnow(),
    )
    db.add(notification)
    await db.flush()

    if redis is not None:
        payload = {"event": "notification", "data": serialize_notification(notification)}
        try:
            await redis.publish(f"ws:user:{user_id}", json.dumps(payload))
        except Exception:
            logger.warning("Failed to push notification to user channel", exc_info=True)

    return notification


async def notify(
    db: AsyncSession,
    user_id: str,
    type_: str,
    title: str,
    message: str,
    icon: str | None = None,
    metadata: dict[str, Any] | None = None,
    redis: Any | None = None,  # noqa: ANN401
) -> Notification | None:
    """Best-effort notification inside a savepoint.

    A failure rolls back only the notification insert and is logged; the
    caller's own writes in the enclosing transaction are untouched.
    """
    try:
        async with db.begin_nested():
            return await create_notification(db, user_id, type_, title, message, icon, metadata, redis)
    except Exception:
        logger.warning("Notification failed: user=%s type=%s", user_id, type_, exc_info=True)
        return None


async def get_notifications(
    db: AsyncSession,
    user_id: str,
    limit: int = LIST_LIMIT,
) -> tuple[list[Notification], int]:
    """Latest notifications (newest first) and the user's unread count."""
    result = await db.execute(
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc())
        .limit(limit)
    )
    notifications = list(result.scalars().all())
    return notifications, await get_unread_count(db, user_id)


async def get_unread_count(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        select(func.count(Notification.id)).where(
            Notification.user_id == user_id,
            Notification.read.is_(False),
        )
    )
    return result.scalar() or 0


async def mark_as_read(db: AsyncSession, user_id: str, notification_id: str) -> bool:
    """Mark one of the user's notifications read. False if it is not theirs or absent."""
    result = await db.execute(
        update(Notification)
        .where(
            Notification.id == notification_id,
            Notification.user_id == user_id,
        )
        .values(read=True)
    )
    return result.rowcount > 0


async def mark_all_as_read(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        update(Notification)
        .where(
            Notification.user_id == user_id,
            Notification.read.is_(False),
        )
        .values(read=True)
    )
    return result.rowcount
