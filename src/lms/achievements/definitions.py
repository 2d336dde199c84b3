"""Achievement catalogue and typed award keys.

Every badge type is a member of ``AchievementType``; its display data lives
in ``ACHIEVEMENT_DEFINITIONS``. Most types are earned once per user. Chapter
and module completion are earned once per chapter/module, identified by the
key objects below instead of free-form metadata.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class AchievementType(str, Enum):
    FIRST_LESSON = "FIRST_LESSON"
    CHAPTER_COMPLETE = "CHAPTER_COMPLETE"
    MODULE_COMPLETE = "MODULE_COMPLETE"
    TIME_1H = "TIME_1H"
    TIME_5H = "TIME_5H"
    TIME_10H = "TIME_10H"
    TIME_50H = "TIME_50H"
    PROFILE_COMPLETE = "PROFILE_COMPLETE"
    SUBSCRIPTION_PRO = "SUBSCRIPTION_PRO"
    SUBSCRIPTION_PREMIUM = "SUBSCRIPTION_PREMIUM"


@dataclass(frozen=True)
class AchievementDefinition:
    title: str
    description: str
    icon: str
    rarity: str

    def as_dict(self) -> dict[str, str]:
        return {
            "title": self.title,
            "description": self.description,
            "icon": self.icon,
            "rarity": self.rarity,
        }


ACHIEVEMENT_DEFINITIONS: dict[AchievementType, AchievementDefinition] = {
    AchievementType.FIRST_LESSON: AchievementDefinition(
        "First Steps", "Completed your first lesson", "🎯", "COMMON"
    ),
    AchievementType.CHAPTER_COMPLETE: AchievementDefinition(
        "Chapter Conqueror", "Completed a chapter", "📚", "COMMON"
    ),
    AchievementType.MODULE_COMPLETE: AchievementDefinition(
        "Module Master", "Completed a module", "🏆", "RARE"
    ),
    AchievementType.TIME_1H: AchievementDefinition(
        "Active Learner", "Studied for 1 hour", "⏱️", "COMMON"
    ),
    AchievementType.TIME_5H: AchievementDefinition(
        "Consistent", "Studied for 5 hours", "⌛", "RARE"
    ),
    AchievementType.TIME_10H: AchievementDefinition(
        "Dedicated", "Studied for 10 hours", "🔥", "EPIC"
    ),
    AchievementType.TIME_50H: AchievementDefinition(
        "Time Master", "Studied for 50 hours", "💎", "LEGENDARY"
    ),
    AchievementType.PROFILE_COMPLETE: AchievementDefinition(
        "Complete Profile", "Filled in every profile field", "👤", "COMMON"
    ),
    AchievementType.SUBSCRIPTION_PRO: AchievementDefinition(
        "Pro Learner", "Subscribed to the Pro plan", "⭐", "RARE"
    ),
    AchievementType.SUBSCRIPTION_PREMIUM: AchievementDefinition(
        "Premium Learner", "Subscribed to the Premium plan", "👑", "EPIC"
    ),
}

# (minutes of tracked learning, badge), ascending.
TIME_THRESHOLDS: tuple[tuple[int, AchievementType], ...] = (
    (60, AchievementType.TIME_1H),
    (300, AchievementType.TIME_5H),
    (600, AchievementType.TIME_10H),
    (3000, AchievementType.TIME_50H),
)


@dataclass(frozen=True)
class ChapterKey:
    """Identifies one CHAPTER_COMPLETE instance."""

    chapter_id: str
    chapter_title: str
    module_id: str

    type = AchievementType.CHAPTER_COMPLETE

    @property
    def award_key(self) -> str:
        return f"chapter:{self.chapter_id}"

    @property
    def metadata(self) -> dict[str, Any]:
        return {"chapterId": self.chapter_id, "chapterTitle": self.chapter_title, "moduleId": self.module_id}


@dataclass(frozen=True)
class ModuleKey:
    """Identifies one MODULE_COMPLETE instance."""

    module_id: str
    module_title: str

    type = AchievementType.MODULE_COMPLETE

    @property
    def award_key(self) -> str:
        return f"module:{self.module_id}"

    @property
    def metadata(self) -> dict[str, Any]:
        return {"moduleId": self.module_id, "moduleTitle": self.module_title}


AwardKey = ChapterKey | ModuleKey

KEYED_TYPES: frozenset[AchievementType] = frozenset({ChapterKey.type, ModuleKey.type})


def resolve_type(value: AchievementType | str) -> AchievementType | None:
    """Parse a type name; None for anything outside the catalogue."""
    if isinstance(value, AchievementType):
        return value
    try:
        return AchievementType(value)
    except ValueError:
        return None


def definitions_payload() -> dict[str, dict[str, str]]:
    """The catalogue as JSON, keyed by type name."""
    return {kind.value: definition.as_dict() for kind, definition in ACHIEVEMENT_DEFINITIONS.items()}
