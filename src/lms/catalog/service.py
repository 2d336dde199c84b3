"""Public course catalogue: modules, outlines, prerequisites, learning paths."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.models import Chapter, Enrollment, LearningPath, Lesson, Module, ModulePrerequisite
from lms.errors import ModuleNotFound, NotFoundError


@dataclass
class ModuleOutline:
    """A module with its chapters and lessons, both in display order."""

    module: Module
    chapters: list[Chapter]
    lessons_by_chapter: dict[str, list[Lesson]] = field(default_factory=dict)

    @property
    def lessons(self) -> list[Lesson]:
        """Every lesson, flattened in chapter then lesson order."""
        return [lesson for chapter in self.chapters for lesson in self.lessons_by_chapter.get(chapter.id, [])]


def serialize_module(module: Module, **extra: Any) -> dict[str, Any]:  # noqa: ANN401
    return {
        "id": module.id,
        "title": module.title,
        "slug": module.slug,
        "description": module.description,
        "category": module.category,
        "thumbnailUrl": module.thumbnail_url,
        "estimatedHours": module.estimated_hours,
        "order": module.order,
        **extra,
    }


def serialize_lesson_summary(lesson: Lesson) -> dict[str, Any]:
    return {
        "id": lesson.id,
        "title": lesson.title,
        "order": lesson.order,
        "estimatedMinutes": lesson.estimated_minutes,
        "difficulty": lesson.difficulty,
    }


async def get_module(db: AsyncSession, module_id: str) -> Module:
    module = await db.get(Module, module_id)
    if module is None:
        raise ModuleNotFound()
    return module


async def load_outline(db: AsyncSession, module_id: str) -> ModuleOutline:
    """Load a module with its ordered chapters and lessons in two queries."""
    module = await get_module(db, module_id)
    chapters = list(
        (await db.execute(select(Chapter).where(Chapter.module_id == module_id).order_by(Chapter.order)))
        .scalars()
        .all()
    )
    outline = ModuleOutline(module=module, chapters=chapters, lessons_by_chapter={c.id: [] for c in chapters})
    if chapters:
        lessons = await db.execute(
            select(Lesson)
            .where(Lesson.chapter_id.in_([c.id for c in chapters]))
            .order_by(Lesson.chapter_id, Lesson.order)
        )
        for lesson in lessons.scalars().all():
            outline.lessons_by_chapter[lesson.chapter_id].append(lesson)
    return outline


async def lesson_counts(db: AsyncSession) -> dict[str, int]:
    """Lesson count per module id."""
    result = await db.execute(
        select(Chapter.module_id, func.count(Lesson.id))
        .join(Lesson, Lesson.chapter_id == Chapter.id)
        .group_by(Chapter.module_id)
    )
    return {module_id: count for module_id, count in result.all()}


async def student_counts(db: AsyncSession) -> dict[str, int]:
    """Enrollment count per module id."""
    result = await db.execute(select(Enrollment.module_id, func.count(Enrollment.id)).group_by(Enrollment.module_id))
    return {module_id: count for module_id, count in result.all()}


async def list_modules(db: AsyncSession) -> list[dict[str, Any]]:
    modules = (await db.execute(select(Module).order_by(Module.order, Module.created_at))).scalars().all()
    lessons = await lesson_counts(db)
    students = await student_counts(db)
    return [
        serialize_module(m, lessonCount=lessons.get(m.id, 0), studentCount=students.get(m.id, 0))
        for m in modules
    ]


async def module_detail(db: AsyncSession, module_id: str) -> dict[str, Any]:
    outline = await load_outline(db, module_id)
    students = await db.execute(select(func.count(Enrollment.id)).where(Enrollment.module_id == module_id))
    return serialize_module(
        outline.module,
        studentCount=students.scalar() or 0,
        lessonCount=len(outline.lessons),
        chapters=[
            {
                "id": chapter.id,
                "title": chapter.title,
                "description": chapter.description,
                "order": chapter.order,
                "lessons": [serialize_lesson_summary(l) for l in outline.lessons_by_chapter[chapter.id]],
            }
            for chapter in outline.chapters
        ],
    )


async def module_prerequisites(db: AsyncSession, module_id: str) -> dict[str, Any]:
    module = await get_module(db, module_id)
    result = await db.execute(
        select(Module)
        .join(ModulePrerequisite, ModulePrerequisite.prerequisite_id == Module.id)
        .where(ModulePrerequisite.module_id == module_id)
        .order_by(ModulePrerequisite.order)
    )
    return {
        "module": serialize_module(module),
        "prerequisites": [serialize_module(m) for m in result.scalars().all()],
    }


# ---------------------------------------------------------------------------
# Learning paths
# ---------------------------------------------------------------------------


async def _modules_in_path_order(db: AsyncSession, module_ids: list[str]) -> list[Module]:
    """Resolve path module ids, skipping ids whose module no longer exists."""
    if not module_ids:
        return []
    found = {m.id: m for m in (await db.execute(select(Module).where(Module.id.in_(module_ids)))).scalars().all()}
    return [found[mid] for mid in module_ids if mid in found]


async def _serialize_path(db: AsyncSession, path: LearningPath) -> dict[str, Any]:
    modules = await _modules_in_path_order(db, list(path.modules or []))
    return {
        "id": path.id,
        "title": path.title,
        "description": path.description,
        "category": path.category,
        "modules": list(path.modules or []),
        "moduleDetails": [serialize_module(m) for m in modules],
    }


async def list_learning_paths(db: AsyncSession) -> list[dict[str, Any]]:
    paths = (await db.execute(select(LearningPath).order_by(LearningPath.order, LearningPath.created_at))).scalars()
    return [await _serialize_path(db, p) for p in paths.all()]


async def get_learning_path(db: AsyncSession, path_id: str) -> dict[str, Any]:
    path = await db.get(LearningPath, path_id)
    if path is None:
        raise NotFoundError("Learning path not found")
    return await _serialize_path(db, path)


async def module_roadmap(db: AsyncSession, module_id: str) -> dict[str, Any]:
    """Every learning path containing the module, with the module's neighbours in each."""
    module = await get_module(db, module_id)
    paths = (await db.execute(select(LearningPath).order_by(LearningPath.order))).scalars().all()
    roadmaps = []
    for path in paths:
        ids = list(path.modules or [])
        if module_id not in ids:
            continue
        modules = await _modules_in_path_order(db, ids)
        position = next(i for i, m in enumerate(modules) if m.id == module_id)
        roadmaps.append(
            {
                "pathId": path.id,
                "pathTitle": path.title,
                "modules": [serialize_module(m) for m in modules],
                "currentPosition": position + 1,
                "totalModules": len(modules),
                "previous": serialize_module(modules[position - 1]) if position > 0 else None,
                "next": serialize_module(modules[position + 1]) if position + 1 < len(modules) else None,
            }
        )
    return {"module": serialize_module(module), "roadmaps": roadmaps}
