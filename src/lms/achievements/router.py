"""Achievement endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from lms.achievements.service import list_achievements, set_selected_badge
from lms.auth.dependencies import get_current_user
from lms.database import get_session
from lms.db.models import User
from lms.schemas import CamelModel

router = APIRouter(prefix="/api/v1/achievements", tags=["Achievements"])


class SelectBadgeRequest(CamelModel):
    achievement_id: str = Field(..., min_length=1)


@router.get("")
async def get_achievements(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    return await list_achievements(db, user.id)


@router.put("/badge")
async def select_badge(
    body: SelectBadgeRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    """Show an owned achievement as the profile badge."""
    profile = await set_selected_badge(db, user.id, body.achievement_id)
    await db.commit()
    return {"message": "Badge updated", "selectedBadge": profile.selected_badge}
