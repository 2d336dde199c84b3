"""Ownership graph and cascading deletes.

The store does not cascade across these relations, so deletes walk
``OWNERSHIP`` children-first: every dependent row is removed before the row
it points at. All statements run in the caller's transaction; the caller
commits once, and any failure rolls back the whole unit.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.base import Base
from lms.db.models import (
    Achievement,
    Chapter,
    Enrollment,
    LearningSession,
    Lesson,
    Module,
    ModulePrerequisite,
    Notification,
    Profile,
    User,
    UserProgress,
    UserSubscription,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Dependent:
    """Rows of ``model`` whose ``column`` holds the owner's id."""

    model: type[Base]
    column: str


OWNERSHIP: dict[type[Base], tuple[Dependent, ...]] = {
    User: (
        Dependent(Notification, "user_id"),
        Dependent(Achievement, "user_id"),
        Dependent(LearningSession, "user_id"),
        Dependent(UserProgress, "user_id"),
        Dependent(Enrollment, "user_id"),
        Dependent(UserSubscription, "user_id"),
        Dependent(Profile, "user_id"),
    ),
    Module: (
        Dependent(Chapter, "module_id"),
        Dependent(LearningSession, "module_id"),
        Dependent(Enrollment, "module_id"),
        Dependent(ModulePrerequisite, "module_id"),
        Dependent(ModulePrerequisite, "prerequisite_id"),
    ),
    Chapter: (Dependent(Lesson, "chapter_id"),),
    Lesson: (
        Dependent(UserProgress, "lesson_id"),
        Dependent(LearningSession, "lesson_id"),
    ),
}


async def _delete_where(
    db: AsyncSession,
    model: type[Base],
    criterion: Any,  # noqa: ANN401
    counts: Counter[str],
) -> None:
    owner_ids = select(model.id).where(criterion)  # type: ignore[attr-defined]
    for dependent in OWNERSHIP.get(model, ()):
        column = getattr(dependent.model, dependent.column)
        await _delete_where(db, dependent.model, column.in_(owner_ids), counts)
    result = await db.execute(delete(model).where(criterion).execution_options(synchronize_session=False))
    counts[model.__tablename__] += result.rowcount


async def delete_cascade(db: AsyncSession, model: type[Base], entity_id: str) -> dict[str, int]:
    """Delete one entity and everything it owns. Returns rows deleted per table."""
    counts: Counter[str] = Counter()
    await _delete_where(db, model, model.id == entity_id, counts)  # type: ignore[attr-defined]
    logger.info("Cascade delete %s %s: %s", model.__tablename__, entity_id, dict(counts))
    return dict(counts)
