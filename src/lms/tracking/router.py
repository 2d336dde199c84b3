"""Learning-session endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from lms.auth.dependencies import get_current_user
from lms.database import get_session
from lms.db.models import User
from lms.redis_client import get_redis_optional
from lms.schemas import CamelModel
from lms.tracking.service import SessionTracker, serialize_session

router = APIRouter(prefix="/api/v1/sessions", tags=["Sessions"])


class StartSessionRequest(CamelModel):
    lesson_id: str = Field(..., min_length=1)
    module_id: str | None = None


class SessionRequest(CamelModel):
    session_id: str = Field(..., min_length=1)


@router.post("/start")
async def start_session(
    body: StartSessionRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    tracker = SessionTracker(db, redis=get_redis_optional())
    session = await tracker.start(user.id, body.lesson_id, body.module_id)
    await db.commit()
    return {"session": serialize_session(session)}


@router.post("/heartbeat")
async def heartbeat(
    body: SessionRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    tracker = SessionTracker(db, redis=get_redis_optional())
    result = await tracker.heartbeat(user.id, body.session_id)
    await db.commit()
    return result


@router.post("/end")
async def end_session(
    body: SessionRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    tracker = SessionTracker(db, redis=get_redis_optional())
    duration = await tracker.end(user.id, body.session_id)
    await db.commit()
    return {"message": "Session ended", "duration": duration}


@router.get("/stats")
async def stats(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    return await SessionTracker(db).stats(user.id)
