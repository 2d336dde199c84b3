"""Admin endpoints: dashboard, content management, user management."""

from __future__ import annotations

from typing import ClassVar, Self

from fastapi import APIRouter, Depends, Query
from pydantic import Field, model_validator
from sqlalchemy.ext.asyncio import AsyncSession

from lms.admin import service
from lms.auth.dependencies import require_admin
from lms.database import get_session
from lms.db.models import LessonDifficulty, ModuleCategory, Role, User
from lms.schemas import CamelModel

router = APIRouter(prefix="/api/v1/admin", tags=["Admin"], dependencies=[Depends(require_admin)])


class PartialUpdate(CamelModel):
    """Partial update body: omitted fields stay unchanged, null is only allowed where the column is nullable."""

    nullable_fields: ClassVar[frozenset[str]] = frozenset()

    @model_validator(mode="after")
    def reject_null_required_fields(self) -> Self:
        for name in sorted(self.model_fields_set - self.nullable_fields):
            if getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class ModuleCreateRequest(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    slug: str | None = Field(None, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$", max_length=220)
    description: str = ""
    category: ModuleCategory
    thumbnail_url: str | None = None
    estimated_hours: int = Field(0, ge=0)
    is_published: bool = True


class ModuleUpdateRequest(PartialUpdate):
    nullable_fields: ClassVar[frozenset[str]] = frozenset({"thumbnail_url"})

    title: str | None = Field(None, min_length=1, max_length=200)
    slug: str | None = Field(None, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$", max_length=220)
    description: str | None = None
    category: ModuleCategory | None = None
    thumbnail_url: str | None = None
    estimated_hours: int | None = Field(None, ge=0)
    order: int | None = Field(None, ge=0)
    is_published: bool | None = None


class ChapterCreateRequest(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = None


class ChapterUpdateRequest(PartialUpdate):
    nullable_fields: ClassVar[frozenset[str]] = frozenset({"description"})

    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None


class LessonCreateRequest(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    content: str = ""
    estimated_minutes: int = Field(15, ge=1)
    difficulty: LessonDifficulty = "BEGINNER"


class LessonUpdateRequest(PartialUpdate):
    title: str | None = Field(None, min_length=1, max_length=200)
    content: str | None = None
    estimated_minutes: int | None = Field(None, ge=1)
    difficulty: LessonDifficulty | None = None


class RoleUpdateRequest(CamelModel):
    role: Role


# --- Dashboard ---


@router.get("/stats")
async def stats(db: AsyncSession = Depends(get_session)) -> dict:
    return {"stats": await service.dashboard_stats(db)}


@router.get("/activity")
async def activity(db: AsyncSession = Depends(get_session)) -> dict:
    return {"activities": await service.recent_activity(db)}


@router.get("/user-progress")
async def user_progress(
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
) -> dict:
    return {"users": await service.user_progress_overview(db, limit)}


# --- Modules ---


@router.get("/modules")
async def list_modules(
    search: str | None = Query(None, max_length=100),
    db: AsyncSession = Depends(get_session),
) -> dict:
    return {"modules": await service.list_modules(db, search)}


@router.get("/modules/{module_id}")
async def get_module(module_id: str, db: AsyncSession = Depends(get_session)) -> dict:
    return {"module": await service.module_for_editing(db, module_id)}


@router.post("/modules", status_code=201)
async def create_module(body: ModuleCreateRequest, db: AsyncSession = Depends(get_session)) -> dict:
    module = await service.create_module(db, body.model_dump())
    await db.commit()
    return {"message": "Module created", "module": service.serialize_module(module, isPublished=module.is_published)}


@router.put("/modules/{module_id}")
async def update_module(
    module_id: str,
    body: ModuleUpdateRequest,
    db: AsyncSession = Depends(get_session),
) -> dict:
    module = await service.update_module(db, module_id, body.model_dump(exclude_unset=True))
    await db.commit()
    return {"message": "Module updated", "module": service.serialize_module(module, isPublished=module.is_published)}


@router.delete("/modules/{module_id}")
async def delete_module(module_id: str, db: AsyncSession = Depends(get_session)) -> dict:
    deleted = await service.delete_module(db, module_id)
    await db.commit()
    return {"message": "Module deleted", "deleted": deleted}


# --- Chapters ---


@router.post("/modules/{module_id}/chapters", status_code=201)
async def create_chapter(
    module_id: str,
    body: ChapterCreateRequest,
    db: AsyncSession = Depends(get_session),
) -> dict:
    chapter = await service.create_chapter(db, module_id, body.title, body.description)
    await db.commit()
    return {"message": "Chapter created", "chapter": service.serialize_chapter(chapter)}


@router.put("/chapters/{chapter_id}")
async def update_chapter(
    chapter_id: str,
    body: ChapterUpdateRequest,
    db: AsyncSession = Depends(get_session),
) -> dict:
    chapter = await service.update_chapter(db, chapter_id, body.model_dump(exclude_unset=True))
    await db.commit()
    return {"message": "Chapter updated", "chapter": service.serialize_chapter(chapter)}


@router.delete("/chapters/{chapter_id}")
async def delete_chapter(chapter_id: str, db: AsyncSession = Depends(get_session)) -> dict:
    deleted = await service.delete_chapter(db, chapter_id)
    await db.commit()
    return {"message": "Chapter deleted", "deleted": deleted}


# --- Lessons ---


@router.post("/chapters/{chapter_id}/lessons", status_code=201)
async def create_lesson(
    chapter_id: str,
    body: LessonCreateRequest,
    db: AsyncSession = Depends(get_session),
) -> dict:
    lesson = await service.create_lesson(db, chapter_id, body.model_dump())
    await db.commit()
    return {"message": "Lesson created", "lesson": service.serialize_lesson(lesson)}


@router.put("/lessons/{lesson_id}")
async def update_lesson(
    lesson_id: str,
    body: LessonUpdateRequest,
    db: AsyncSession = Depends(get_session),
) -> dict:
    lesson = await service.update_lesson(db, lesson_id, body.model_dump(exclude_unset=True))
    await db.commit()
    return {"message": "Lesson updated", "lesson": service.serialize_lesson(lesson)}


@router.delete("/lessons/{lesson_id}")
async def delete_lesson(lesson_id: str, db: AsyncSession = Depends(get_session)) -> dict:
    deleted = await service.delete_lesson(db, lesson_id)
    await db.commit()
    return {"message": "Lesson deleted", "deleted": deleted}


# --- Users ---


@router.get("/users")
async def list_users(
    search: str | None = Query(None, max_length=100),
    role: Role | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
) -> dict:
    return await service.list_users(db, search=search, role=role, page=page, limit=limit)


@router.get("/users/{user_id}")
async def get_user(user_id: str, db: AsyncSession = Depends(get_session)) -> dict:
    return {"user": await service.user_detail(db, user_id)}


@router.put("/users/{user_id}/role")
async def update_role(
    user_id: str,
    body: RoleUpdateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> dict:
    user = await service.update_user_role(db, admin, user_id, body.role)
    await db.commit()
    return {"message": "Role updated", "user": {"id": user.id, "role": user.role}}


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> dict:
    deleted = await service.delete_user(db, admin, user_id)
    await db.commit()
    return {"message": "User deleted", "deleted": deleted}
