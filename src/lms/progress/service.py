"""Enrollment, lesson completion, and progress views.

Completion state is always recounted from ``user_progress`` rows instead of
kept in counters, so admin edits to chapters and lessons never leave stale
totals behind.
"""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from lms.achievements.definitions import AchievementType, ChapterKey, ModuleKey
from lms.achievements.service import award_achievement, serialize_achievement
from lms.catalog.service import get_module, load_outline, serialize_lesson_summary
from lms.db.models import Chapter, Enrollment, Lesson, Module, UserProgress
from lms.errors import (
    AlreadyEnrolled,
    LessonNotFound,
    ModuleNotInBundle,
    NoSubscription,
    NotEnrolled,
    QuotaExceeded,
)
from lms.notifications.service import CHAPTER_COMPLETE, LESSON_COMPLETE, MODULE_COMPLETE, notify
from lms.subscriptions.service import PRO, get_subscription
from lms.utils import isoformat, percentage, utcnow

logger = structlog.get_logger()


def serialize_enrollment(enrollment: Enrollment) -> dict[str, Any]:
    return {
        "id": enrollment.id,
        "userId": enrollment.user_id,
        "moduleId": enrollment.module_id,
        "enrolledAt": isoformat(enrollment.enrolled_at),
        "lastAccessedAt": isoformat(enrollment.last_accessed_at),
    }


def serialize_progress(progress: UserProgress) -> dict[str, Any]:
    return {
        "id": progress.id,
        "userId": progress.user_id,
        "lessonId": progress.lesson_id,
        "completed": progress.completed,
        "completedAt": isoformat(progress.completed_at),
    }


class ProgressService:
    """Enrollment gating and the lesson-completion cascade for one request."""

    def __init__(self, db: AsyncSession, redis: Any | None = None) -> None:  # noqa: ANN401
        self.db = db
        self.redis = redis

    # --- Enrollment ---

    async def get_enrollment(self, user_id: str, module_id: str) -> Enrollment | None:
        result = await self.db.execute(
            select(Enrollment).where(
                Enrollment.user_id == user_id,
                Enrollment.module_id == module_id,
            )
        )
        return result.scalar_one_or_none()

    async def enrollment_count(self, user_id: str) -> int:
        result = await self.db.execute(select(func.count(Enrollment.id)).where(Enrollment.user_id == user_id))
        return result.scalar() or 0

    async def enroll(self, user_id: str, module_id: str) -> Enrollment:
        """Enroll the user, enforcing the subscription tier's quota.

        Every rule is checked before anything is written:
        PRO requires the module in the selected bundle, and any tier with a
        module limit (BASIC, PRO) rejects once the user holds that many
        enrollments. A tier without a limit (PREMIUM) is unrestricted.
        """
        module = await get_module(self.db, module_id)
        if await self.get_enrollment(user_id, module_id) is not None:
            raise AlreadyEnrolled()

        subscription = await get_subscription(self.db, user_id)
        if subscription is None:
            raise NoSubscription()
        tier = subscription.tier

        if tier.module_limit is not None:
            if tier.name == PRO and module_id not in (subscription.selected_modules or []):
                raise ModuleNotInBundle()
            if await self.enrollment_count(user_id) >= tier.module_limit:
                raise QuotaExceeded(f"{tier.display_name} tier allows at most {tier.module_limit} module(s)")

        now = utcnow()
        enrollment = Enrollment(user_id=user_id, module_id=module.id, enrolled_at=now, last_accessed_at=now)
        self.db.add(enrollment)
        await self.db.flush()
        logger.info("enrollment_created", user_id=user_id, module_id=module_id, tier=tier.name)
        return enrollment

    async def _require_enrollment(self, user_id: str, module_id: str) -> Enrollment:
        enrollment = await self.get_enrollment(user_id, module_id)
        if enrollment is None:
            raise NotEnrolled()
        return enrollment

    # --- Completion ---

    async def _upsert_progress(self, user_id: str, lesson_id: str) -> UserProgress:
        """Mark the lesson completed; a repeat only refreshes completed_at."""
        now = utcnow()
        result = await self.db.execute(
            select(UserProgress).where(
                UserProgress.user_id == user_id,
                UserProgress.lesson_id == lesson_id,
            )
        )
        progress = result.scalar_one_or_none()
        if progress is None:
            try:
                async with self.db.begin_nested():
                    progress = UserProgress(user_id=user_id, lesson_id=lesson_id, completed=True, completed_at=now)
                    self.db.add(progress)
            except IntegrityError:
                # A concurrent completion inserted the row first.
                result = await self.db.execute(
                    select(UserProgress).where(
                        UserProgress.user_id == user_id,
                        UserProgress.lesson_id == lesson_id,
                    )
                )
                progress = result.scalar_one()
        progress.completed = True
        progress.completed_at = now
        await self.db.flush()
        return progress

    async def _completed_count(self, user_id: str, *criteria: Any) -> int:  # noqa: ANN401
        stmt = (
            select(func.count(func.distinct(UserProgress.lesson_id)))
            .join(Lesson, Lesson.id == UserProgress.lesson_id)
            .where(UserProgress.user_id == user_id, UserProgress.completed.is_(True), *criteria)
        )
        return (await self.db.execute(stmt)).scalar() or 0

    async def _chapter_totals(self, user_id: str, chapter_id: str) -> tuple[int, int]:
        total = await self.db.execute(select(func.count(Lesson.id)).where(Lesson.chapter_id == chapter_id))
        completed = await self._completed_count(user_id, Lesson.chapter_id == chapter_id)
        return completed, total.scalar() or 0

    async def _module_totals(self, user_id: str, module_id: str) -> tuple[int, int]:
        in_module = Lesson.chapter_id.in_(select(Chapter.id).where(Chapter.module_id == module_id))
        total = await self.db.execute(select(func.count(Lesson.id)).where(in_module))
        completed = await self._completed_count(user_id, in_module)
        return completed, total.scalar() or 0

    async def complete_lesson(self, user_id: str, lesson_id: str) -> dict[str, Any]:
        """Mark a lesson complete and run the completion cascade.

        Order: progress upsert, enrollment access time, FIRST_LESSON,
        LESSON_COMPLETE notification, chapter recount, module recount.
        Awards and notifications are best-effort and never fail the call.
        """
        lesson = await self.db.get(Lesson, lesson_id)
        if lesson is None:
            raise LessonNotFound()
        chapter = await self.db.get(Chapter, lesson.chapter_id)
        module = await self.db.get(Module, chapter.module_id)
        enrollment = await self._require_enrollment(user_id, module.id)

        progress = await self._upsert_progress(user_id, lesson_id)
        enrollment.last_accessed_at = utcnow()
        await self.db.flush()

        achievements = []
        total_completed = (
            await self.db.execute(
                select(func.count(UserProgress.id)).where(
                    UserProgress.user_id == user_id,
                    UserProgress.completed.is_(True),
                )
            )
        ).scalar() or 0
        if total_completed == 1:
            first = await award_achievement(self.db, user_id, AchievementType.FIRST_LESSON, redis=self.redis)
            achievements.append(first)

        await notify(
            self.db,
            user_id,
            LESSON_COMPLETE,
            title=f"Lesson complete: {lesson.title}",
            message=f'You completed the lesson "{lesson.title}"',
            icon="check_circle",
            metadata={"lessonId": lesson.id, "chapterId": chapter.id, "moduleId": module.id},
            redis=self.redis,
        )

        chapter_done, chapter_total = await self._chapter_totals(user_id, chapter.id)
        chapter_completed = chapter_total > 0 and chapter_done == chapter_total
        if chapter_completed:
            key = ChapterKey(chapter_id=chapter.id, chapter_title=chapter.title, module_id=module.id)
            awarded = await award_achievement(self.db, user_id, key.type, key, redis=self.redis)
            achievements.append(awarded)
            if awarded is not None:
                await notify(
                    self.db,
                    user_id,
                    CHAPTER_COMPLETE,
                    title=f"Chapter complete: {chapter.title}",
                    message=f'You completed the chapter "{chapter.title}"',
                    icon="menu_book",
                    metadata={"chapterId": chapter.id, "moduleId": module.id},
                    redis=self.redis,
                )

        module_done, module_total = await self._module_totals(user_id, module.id)
        module_completed = module_total > 0 and module_done == module_total
        if module_completed:
            key = ModuleKey(module_id=module.id, module_title=module.title)
            awarded = await award_achievement(self.db, user_id, key.type, key, redis=self.redis)
            achievements.append(awarded)
            if awarded is not None:
                await notify(
                    self.db,
                    user_id,
                    MODULE_COMPLETE,
                    title=f"Module complete: {module.title}",
                    message=f'Congratulations! You completed the module "{module.title}"',
                    icon="emoji_events",
                    metadata={"moduleId": module.id},
                    redis=self.redis,
                )

        logger.info(
            "lesson_completed",
            user_id=user_id,
            lesson_id=lesson_id,
            chapter_progress=f"{chapter_done}/{chapter_total}",
            module_progress=f"{module_done}/{module_total}",
        )
        return {
            "progress": serialize_progress(progress),
            "chapterCompleted": chapter_completed,
            "moduleCompleted": module_completed,
            "moduleProgress": {
                "totalLessons": module_total,
                "completedLessons": module_done,
                "progressPercentage": percentage(module_done, module_total),
            },
            "achievements": [serialize_achievement(a) for a in achievements if a is not None],
        }

    # --- Views ---

    async def _completion_map(self, user_id: str, lesson_ids: list[str]) -> dict[str, UserProgress]:
        if not lesson_ids:
            return {}
        result = await self.db.execute(
            select(UserProgress).where(
                UserProgress.user_id == user_id,
                UserProgress.lesson_id.in_(lesson_ids),
            )
        )
        return {p.lesson_id: p for p in result.scalars().all()}

    async def user_progress(self, user_id: str) -> list[dict[str, Any]]:
        """Completion summary for every module the user is enrolled in."""
        result = await self.db.execute(
            select(Enrollment, Module)
            .join(Module, Module.id == Enrollment.module_id)
            .where(Enrollment.user_id == user_id)
            .order_by(Enrollment.enrolled_at)
        )
        summaries = []
        for enrollment, module in result.all():
            completed, total = await self._module_totals(user_id, module.id)
            summaries.append(
                {
                    "moduleId": module.id,
                    "moduleTitle": module.title,
                    "moduleSlug": module.slug,
                    "enrolledAt": isoformat(enrollment.enrolled_at),
                    "lastAccessedAt": isoformat(enrollment.last_accessed_at),
                    "totalLessons": total,
                    "completedLessons": completed,
                    "progressPercentage": percentage(completed, total),
                }
            )
        return summaries

    async def module_progress(self, user_id: str, module_id: str) -> dict[str, Any]:
        """Per-lesson completion for one module, grouped by chapter."""
        outline = await load_outline(self.db, module_id)
        lessons = outline.lessons
        done = await self._completion_map(user_id, [l.id for l in lessons])
        completed = sum(1 for p in done.values() if p.completed)

        chapters = []
        for chapter in outline.chapters:
            items = []
            for lesson in outline.lessons_by_chapter[chapter.id]:
                record = done.get(lesson.id)
                items.append(
                    {
                        **serialize_lesson_summary(lesson),
                        "completed": bool(record and record.completed),
                        "completedAt": isoformat(record.completed_at) if record else None,
                    }
                )
            chapters.append({"id": chapter.id, "title": chapter.title, "order": chapter.order, "lessons": items})

        return {
            "module": {"id": outline.module.id, "title": outline.module.title, "slug": outline.module.slug},
            "totalLessons": len(lessons),
            "completedLessons": completed,
            "progressPercentage": percentage(completed, len(lessons)),
            "chapters": chapters,
        }

    async def lesson_view(self, user_id: str, lesson_id: str) -> dict[str, Any]:
        """Lesson content for an enrolled user, with outline and prev/next navigation."""
        lesson = await self.db.get(Lesson, lesson_id)
        if lesson is None:
            raise LessonNotFound()
        chapter = await self.db.get(Chapter, lesson.chapter_id)
        enrollment = await self._require_enrollment(user_id, chapter.module_id)
        outline = await load_outline(self.db, chapter.module_id)

        flat = outline.lessons
        done = await self._completion_map(user_id, [l.id for l in flat])
        completed = sum(1 for p in done.values() if p.completed)
        index = next(i for i, l in enumerate(flat) if l.id == lesson_id)

        enrollment.last_accessed_at = utcnow()
        await self.db.flush()

        return {
            "lesson": {
                "id": lesson.id,
                "title": lesson.title,
                "content": lesson.content,
                "estimatedMinutes": lesson.estimated_minutes,
                "difficulty": lesson.difficulty,
                "order": lesson.order,
            },
            "chapter": {"id": chapter.id, "title": chapter.title},
            "module": {"id": outline.module.id, "title": outline.module.title, "slug": outline.module.slug},
            "progress": {
                "totalLessons": len(flat),
                "completedLessons": completed,
                "progressPercentage": percentage(completed, len(flat)),
            },
            "chapters": [
                {
                    "id": ch.id,
                    "title": ch.title,
                    "order": ch.order,
                    "lessons": [
                        {
                            **serialize_lesson_summary(l),
                            "completed": bool(done.get(l.id) and done[l.id].completed),
                            "isActive": l.id == lesson_id,
                        }
                        for l in outline.lessons_by_chapter[ch.id]
                    ],
                }
                for ch in outline.chapters
            ],
            "navigation": {
                "prev": serialize_lesson_summary(flat[index - 1]) if index > 0 else None,
                "next": serialize_lesson_summary(flat[index + 1]) if index + 1 < len(flat) else None,
            },
        }
