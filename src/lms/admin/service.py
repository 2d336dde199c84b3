"""Admin dashboard, content management, and user management."""

from __future__ import annotations

import math
import re
import time
from typing import Any

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from lms.achievements.service import serialize_achievement
from lms.admin.cascade import delete_cascade
from lms.catalog.service import get_module, load_outline, serialize_module
from lms.db.models import (
    ROLE_USER,
    Achievement,
    Chapter,
    Enrollment,
    Lesson,
    Module,
    Notification,
    User,
    UserProgress,
    UserSubscription,
)
from lms.errors import ConflictError, ForbiddenError, NotFoundError
from lms.subscriptions.service import serialize_subscription
from lms.utils import as_utc, isoformat, percentage

logger = structlog.get_logger()

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"

ACTIVITY_LIMIT = 10


def _base36(number: int) -> str:
    digits = ""
    while number:
        number, rem = divmod(number, 36)
        digits = _BASE36[rem] + digits
    return digits or "0"


def generate_slug(title: str, now_ms: int | None = None) -> str:
    """URL slug from the title plus a base-36 millisecond timestamp suffix."""
    stem = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")
    suffix = _base36(now_ms if now_ms is not None else int(time.time() * 1000))
    return f"{stem}-{suffix}" if stem else suffix


def _display_name(user: User) -> str:
    return (user.profile.nickname if user.profile else None) or user.username


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


async def _count(db: AsyncSession, column: Any, *criteria: Any) -> int:  # noqa: ANN401
    return (await db.execute(select(func.count(column)).where(*criteria))).scalar() or 0


async def dashboard_stats(db: AsyncSession) -> dict[str, Any]:
    """Headline counts. Average completion is completed lessons over students x lessons."""
    students = await _count(db, User.id, User.role == ROLE_USER)
    modules = await _count(db, Module.id)
    enrollments = await _count(db, Enrollment.id)
    lessons = await _count(db, Lesson.id)
    completed = await _count(db, UserProgress.id, UserProgress.completed.is_(True))
    return {
        "totalStudents": students,
        "activeModules": modules,
        "totalEnrollments": enrollments,
        "avgCompletion": min(percentage(completed, students * lessons), 100),
    }


async def recent_activity(db: AsyncSession, limit: int = ACTIVITY_LIMIT) -> list[dict[str, Any]]:
    """Latest notifications, registrations, and enrollments merged newest first."""
    activities: list[dict[str, Any]] = []

    notifications = await db.execute(
        select(Notification, User)
        .join(User, User.id == Notification.user_id)
        .order_by(Notification.created_at.desc())
        .limit(limit)
    )
    for notification, user in notifications.all():
        activities.append(
            {
                "id": notification.id,
                "type": notification.type,
                "title": notification.title,
                "description": f"{_display_name(user)}: {notification.message}",
                "timestamp": notification.created_at,
            }
        )

    users = await db.execute(select(User).order_by(User.created_at.desc()).limit(5))
    for user in users.scalars().all():
        activities.append(
            {
                "id": f"user-{user.id}",
                "type": "NEW_USER",
                "title": "New Registration",
                "description": f"{_display_name(user)} joined the platform",
                "timestamp": user.created_at,
            }
        )

    enrollments = await db.execute(
        select(Enrollment, User, Module)
        .join(User, User.id == Enrollment.user_id)
        .join(Module, Module.id == Enrollment.module_id)
        .order_by(Enrollment.enrolled_at.desc())
        .limit(5)
    )
    for enrollment, user, module in enrollments.all():
        activities.append(
            {
                "id": f"enrollment-{enrollment.id}",
                "type": "ENROLLMENT",
                "title": "New Enrollment",
                "description": f"{_display_name(user)} enrolled in {module.title}",
                "timestamp": enrollment.enrolled_at,
            }
        )

    activities.sort(key=lambda a: as_utc(a["timestamp"]), reverse=True)
    return [{**a, "timestamp": isoformat(a["timestamp"])} for a in activities[:limit]]


async def user_progress_overview(db: AsyncSession, limit: int = 10) -> list[dict[str, Any]]:
    """Per-student completion across their enrolled modules, best first."""
    users = (
        await db.execute(select(User).where(User.role == ROLE_USER).order_by(User.created_at).limit(limit))
    ).scalars().all()

    overview = []
    for user in users:
        module_ids = select(Enrollment.module_id).where(Enrollment.user_id == user.id)
        total = await _count(
            db,
            Lesson.id,
            Lesson.chapter_id.in_(select(Chapter.id).where(Chapter.module_id.in_(module_ids))),
        )
        completed = await _count(db, UserProgress.id, UserProgress.user_id == user.id, UserProgress.completed.is_(True))
        enrolled = await _count(db, Enrollment.id, Enrollment.user_id == user.id)
        overview.append(
            {
                "id": user.id,
                "name": _display_name(user),
                "email": user.email,
                "avatarUrl": user.profile.avatar_url if user.profile else None,
                "progressPercent": min(percentage(completed, total), 100),
                "completedLessons": completed,
                "totalLessons": total,
                "enrolledModules": enrolled,
            }
        )
    overview.sort(key=lambda u: u["progressPercent"], reverse=True)
    return overview


# ---------------------------------------------------------------------------
# Content: modules
# ---------------------------------------------------------------------------


async def list_modules(db: AsyncSession, search: str | None = None) -> list[dict[str, Any]]:
    stmt = select(Module).order_by(Module.created_at.desc())
    if search:
        pattern = f"%{search.lower()}%"
        stmt = stmt.where(or_(func.lower(Module.title).like(pattern), func.lower(Module.description).like(pattern)))
    modules = (await db.execute(stmt)).scalars().all()

    rows = []
    for module in modules:
        chapter_ids = select(Chapter.id).where(Chapter.module_id == module.id)
        rows.append(
            serialize_module(
                module,
                isPublished=module.is_published,
                chaptersCount=await _count(db, Chapter.id, Chapter.module_id == module.id),
                lessonsCount=await _count(db, Lesson.id, Lesson.chapter_id.in_(chapter_ids)),
                studentsCount=await _count(db, Enrollment.id, Enrollment.module_id == module.id),
                createdAt=isoformat(module.created_at),
                updatedAt=isoformat(module.updated_at),
            )
        )
    return rows


def serialize_chapter(chapter: Chapter) -> dict[str, Any]:
    return {
        "id": chapter.id,
        "moduleId": chapter.module_id,
        "title": chapter.title,
        "description": chapter.description,
        "order": chapter.order,
    }


def serialize_lesson(lesson: Lesson) -> dict[str, Any]:
    return {
        "id": lesson.id,
        "chapterId": lesson.chapter_id,
        "title": lesson.title,
        "content": lesson.content,
        "order": lesson.order,
        "estimatedMinutes": lesson.estimated_minutes,
        "difficulty": lesson.difficulty,
    }


async def module_for_editing(db: AsyncSession, module_id: str) -> dict[str, Any]:
    outline = await load_outline(db, module_id)
    return serialize_module(
        outline.module,
        isPublished=outline.module.is_published,
        chapters=[
            {**serialize_chapter(c), "lessons": [serialize_lesson(l) for l in outline.lessons_by_chapter[c.id]]}
            for c in outline.chapters
        ],
    )


async def _ensure_slug_free(db: AsyncSession, slug: str, exclude_id: str | None = None) -> None:
    stmt = select(Module.id).where(Module.slug == slug)
    if exclude_id is not None:
        stmt = stmt.where(Module.id != exclude_id)
    if (await db.execute(stmt)).first() is not None:
        raise ConflictError("Slug already in use")


async def create_module(db: AsyncSession, data: dict[str, Any]) -> Module:
    """Create a module; the slug is generated from the title unless given."""
    slug = data.pop("slug", None) or generate_slug(data["title"])
    await _ensure_slug_free(db, slug)
    order = (await db.execute(select(func.coalesce(func.max(Module.order), 0)))).scalar() or 0
    module = Module(slug=slug, order=order + 1, **data)
    db.add(module)
    await db.flush()
    logger.info("module_created", module_id=module.id, slug=slug)
    return module


async def update_module(db: AsyncSession, module_id: str, changes: dict[str, Any]) -> Module:
    module = await get_module(db, module_id)
    if "slug" in changes and changes["slug"] != module.slug:
        await _ensure_slug_free(db, changes["slug"], exclude_id=module_id)
    for field, value in changes.items():
        setattr(module, field, value)
    await db.flush()
    return module


async def delete_module(db: AsyncSession, module_id: str) -> dict[str, int]:
    await get_module(db, module_id)
    counts = await delete_cascade(db, Module, module_id)
    logger.info("module_deleted", module_id=module_id, rows=counts)
    return counts


# ---------------------------------------------------------------------------
# Content: chapters & lessons
# ---------------------------------------------------------------------------


async def _get_or_404(db: AsyncSession, model: type, entity_id: str, label: str) -> Any:  # noqa: ANN401
    entity = await db.get(model, entity_id)
    if entity is None:
        raise NotFoundError(f"{label} not found")
    return entity


async def create_chapter(db: AsyncSession, module_id: str, title: str, description: str | None = None) -> Chapter:
    """Append a chapter; order is one past the current maximum."""
    await get_module(db, module_id)
    last = (await db.execute(select(func.max(Chapter.order)).where(Chapter.module_id == module_id))).scalar()
    chapter = Chapter(module_id=module_id, title=title, description=description, order=(last or 0) + 1)
    db.add(chapter)
    await db.flush()
    return chapter


async def update_chapter(db: AsyncSession, chapter_id: str, changes: dict[str, Any]) -> Chapter:
    chapter = await _get_or_404(db, Chapter, chapter_id, "Chapter")
    for field, value in changes.items():
        setattr(chapter, field, value)
    await db.flush()
    return chapter


async def delete_chapter(db: AsyncSession, chapter_id: str) -> dict[str, int]:
    await _get_or_404(db, Chapter, chapter_id, "Chapter")
    counts = await delete_cascade(db, Chapter, chapter_id)
    logger.info("chapter_deleted", chapter_id=chapter_id, rows=counts)
    return counts


async def create_lesson(db: AsyncSession, chapter_id: str, data: dict[str, Any]) -> Lesson:
    """Append a lesson; order is one past the current maximum."""
    await _get_or_404(db, Chapter, chapter_id, "Chapter")
    last = (await db.execute(select(func.max(Lesson.order)).where(Lesson.chapter_id == chapter_id))).scalar()
    lesson = Lesson(chapter_id=chapter_id, order=(last or 0) + 1, **data)
    db.add(lesson)
    await db.flush()
    return lesson


async def update_lesson(db: AsyncSession, lesson_id: str, changes: dict[str, Any]) -> Lesson:
    lesson = await _get_or_404(db, Lesson, lesson_id, "Lesson")
    for field, value in changes.items():
        setattr(lesson, field, value)
    await db.flush()
    return lesson


async def delete_lesson(db: AsyncSession, lesson_id: str) -> dict[str, int]:
    await _get_or_404(db, Lesson, lesson_id, "Lesson")
    counts = await delete_cascade(db, Lesson, lesson_id)
    logger.info("lesson_deleted", lesson_id=lesson_id, rows=counts)
    return counts


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


async def list_users(
    db: AsyncSession,
    search: str | None = None,
    role: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict[str, Any]:
    criteria = []
    if search:
        pattern = f"%{search.lower()}%"
        criteria.append(or_(func.lower(User.username).like(pattern), func.lower(User.email).like(pattern)))
    if role:
        criteria.append(User.role == role)

    total = await _count(db, User.id, *criteria)
    users = (
        await db.execute(
            select(User).where(*criteria).order_by(User.created_at.desc()).offset((page - 1) * limit).limit(limit)
        )
    ).scalars().all()

    rows = []
    for user in users:
        subscription = (
            await db.execute(select(UserSubscription).where(UserSubscription.user_id == user.id))
        ).scalar_one_or_none()
        rows.append(
            {
                "id": user.id,
                "name": _display_name(user),
                "email": user.email,
                "role": user.role,
                "avatarUrl": user.profile.avatar_url if user.profile else None,
                "bio": user.profile.bio if user.profile else None,
                "subscriptionTier": subscription.tier.display_name if subscription else "None",
                "enrolledModules": await _count(db, Enrollment.id, Enrollment.user_id == user.id),
                "createdAt": isoformat(user.created_at),
            }
        )
    return {
        "users": rows,
        "pagination": {"page": page, "limit": limit, "total": total, "totalPages": math.ceil(total / limit)},
    }


async def user_detail(db: AsyncSession, user_id: str) -> dict[str, Any]:
    user = await _get_or_404(db, User, user_id, "User")
    subscription = (
        await db.execute(select(UserSubscription).where(UserSubscription.user_id == user_id))
    ).scalar_one_or_none()
    enrollments = await db.execute(
        select(Enrollment, Module.title)
        .join(Module, Module.id == Enrollment.module_id)
        .where(Enrollment.user_id == user_id)
    )
    completed = await db.execute(
        select(UserProgress).where(UserProgress.user_id == user_id, UserProgress.completed.is_(True))
    )
    achievements = await db.execute(select(Achievement).where(Achievement.user_id == user_id))
    profile = user.profile
    return {
        "id": user.id,
        "email": user.email,
        "username": user.username,
        "role": user.role,
        "createdAt": isoformat(user.created_at),
        "profile": None
        if profile is None
        else {"nickname": profile.nickname, "bio": profile.bio, "avatarUrl": profile.avatar_url},
        "subscription": serialize_subscription(subscription) if subscription else None,
        "enrollments": [
            {"moduleId": e.module_id, "moduleTitle": title, "enrolledAt": isoformat(e.enrolled_at)}
            for e, title in enrollments.all()
        ],
        "completedLessons": [
            {"lessonId": p.lesson_id, "completedAt": isoformat(p.completed_at)} for p in completed.scalars().all()
        ],
        "achievements": [serialize_achievement(a) for a in achievements.scalars().all()],
    }


async def update_user_role(db: AsyncSession, acting_admin: User, user_id: str, role: str) -> User:
    """Change a user's role. Admins cannot change their own role."""
    if user_id == acting_admin.id:
        raise ForbiddenError("Cannot change your own role")
    user = await _get_or_404(db, User, user_id, "User")
    user.role = role
    await db.flush()
    logger.info("user_role_changed", user_id=user_id, role=role, by=acting_admin.id)
    return user


async def delete_user(db: AsyncSession, acting_admin: User, user_id: str) -> dict[str, int]:
    """Delete a user and everything they own. Admins cannot delete themselves."""
    if user_id == acting_admin.id:
        raise ForbiddenError("Cannot delete your own account")
    await _get_or_404(db, User, user_id, "User")
    counts = await delete_cascade(db, User, user_id)
    logger.info("user_deleted", user_id=user_id, by=acting_admin.id, rows=counts)
    return counts
