"""Notification endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from lms.auth.dependencies import get_current_user
from lms.database import get_session
from lms.db.models import User
from lms.errors import NotFoundError
from lms.notifications.service import (
    get_notifications,
    mark_all_as_read,
    mark_as_read,
    serialize_notification,
)

router = APIRouter(prefix="/api/v1/notifications", tags=["Notifications"])


@router.get("")
async def list_notifications(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    """Latest 50 notifications plus the unread count."""
    notifications, unread = await get_notifications(db, user.id)
    return {
        "notifications": [serialize_notification(n) for n in notifications],
        "unreadCount": unread,
    }


@router.put("/read-all")
async def read_all(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    count = await mark_all_as_read(db, user.id)
    await db.commit()
    return {"message": "All notifications marked as read", "updated": count}


@router.put("/{notification_id}/read")
async def read_one(
    notification_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    if not await mark_as_read(db, user.id, notification_id):
        raise NotFoundError("Notification not found")
    await db.commit()
    return {"message": "Notification marked as read"}
