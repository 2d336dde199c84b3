"""Enrollment and progress endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from lms.auth.dependencies import get_current_user
from lms.database import get_session
from lms.db.models import User
from lms.progress.service import ProgressService, serialize_enrollment
from lms.redis_client import get_redis_optional
from lms.schemas import CamelModel

router = APIRouter(prefix="/api/v1/progress", tags=["Progress"])


class EnrollRequest(CamelModel):
    module_id: str = Field(..., min_length=1)


class CompleteLessonRequest(CamelModel):
    lesson_id: str = Field(..., min_length=1)


@router.post("/enroll", status_code=201)
async def enroll(
    body: EnrollRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    svc = ProgressService(db)
    enrollment = await svc.enroll(user.id, body.module_id)
    await db.commit()
    return {"message": "Enrolled successfully", "enrollment": serialize_enrollment(enrollment)}


@router.post("/complete-lesson")
async def complete_lesson(
    body: CompleteLessonRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    svc = ProgressService(db, redis=get_redis_optional())
    result = await svc.complete_lesson(user.id, body.lesson_id)
    await db.commit()
    return {"message": "Lesson marked as completed", **result}


@router.get("/user")
async def user_progress(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    return {"progress": await ProgressService(db).user_progress(user.id)}


@router.get("/module/{module_id}")
async def module_progress(
    module_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    return await ProgressService(db).module_progress(user.id, module_id)


@router.get("/lesson/{lesson_id}")
async def lesson(
    lesson_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    """Lesson content; requires enrollment in the lesson's module."""
    view = await ProgressService(db).lesson_view(user.id, lesson_id)
    await db.commit()
    return view
