"""Achievement catalogue, awarding rules, time badges and badge selection."""

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from lms.achievements.definitions import (
    ACHIEVEMENT_DEFINITIONS,
    KEYED_TYPES,
    TIME_THRESHOLDS,
    AchievementType,
    ChapterKey,
    ModuleKey,
    definitions_payload,
    resolve_type,
)
from lms.achievements.service import award_achievement, check_time_achievements
from lms.db.models import Achievement, LearningSession, Notification
from lms.utils import utcnow
from tests.conftest import TestUser


async def _count(sessions, model, *criteria) -> int:
    async with sessions() as db:
        return (await db.execute(select(func.count(model.id)).where(*criteria))).scalar()


class TestDefinitions:
    def test_every_type_has_a_definition(self):
        assert set(ACHIEVEMENT_DEFINITIONS) == set(AchievementType)

    def test_resolve_type(self):
        assert resolve_type("FIRST_LESSON") is AchievementType.FIRST_LESSON
        assert resolve_type(AchievementType.TIME_5H) is AchievementType.TIME_5H
        assert resolve_type("NOT_A_BADGE") is None

    def test_thresholds_ascending(self):
        minutes = [m for m, _ in TIME_THRESHOLDS]
        assert minutes == sorted(minutes) == [60, 300, 600, 3000]

    def test_keys(self):
        chapter = ChapterKey(chapter_id="c1", chapter_title="Intro", module_id="m1")
        module = ModuleKey(module_id="m1", module_title="Kotlin")
        assert chapter.type is AchievementType.CHAPTER_COMPLETE
        assert chapter.award_key == "chapter:c1"
        assert chapter.metadata == {"chapterId": "c1", "chapterTitle": "Intro", "moduleId": "m1"}
        assert module.award_key == "module:m1"
        assert KEYED_TYPES == {AchievementType.CHAPTER_COMPLETE, AchievementType.MODULE_COMPLETE}

    def test_payload(self):
        payload = definitions_payload()
        assert payload["MODULE_COMPLETE"]["rarity"] == "RARE"
        assert set(payload["TIME_50H"]) == {"title", "description", "icon", "rarity"}


class TestAward:
    async def test_single_instance_awarded_once(self, sessions, user: TestUser):
        async with sessions() as db:
            first = await award_achievement(db, user.id, AchievementType.FIRST_LESSON)
            second = await award_achievement(db, user.id, "FIRST_LESSON")
            await db.commit()
        assert first is not None
        assert first.title == ACHIEVEMENT_DEFINITIONS[AchievementType.FIRST_LESSON].title
        assert second is None
        assert await _count(sessions, Achievement, Achievement.user_id == user.id) == 1

    async def test_award_emits_achievement_notification(self, sessions, user: TestUser):
        async with sessions() as db:
            achievement = await award_achievement(db, user.id, AchievementType.TIME_1H)
            await db.commit()
        async with sessions() as db:
            notification = (
                await db.execute(select(Notification).where(Notification.user_id == user.id))
            ).scalar_one()
        assert notification.type == "ACHIEVEMENT"
        assert notification.notification_metadata["achievementId"] == achievement.id

    async def test_per_chapter_instances(self, sessions, user: TestUser):
        one = ChapterKey(chapter_id="c1", chapter_title="One", module_id="m1")
        two = ChapterKey(chapter_id="c2", chapter_title="Two", module_id="m1")
        async with sessions() as db:
            assert await award_achievement(db, user.id, one.type, one) is not None
            assert await award_achievement(db, user.id, one.type, one) is None
            assert await award_achievement(db, user.id, two.type, two) is not None
            await db.commit()
        assert await _count(sessions, Achievement, Achievement.type == "CHAPTER_COMPLETE") == 2

    async def test_unknown_type_returns_none(self, sessions, user: TestUser):
        async with sessions() as db:
            assert await award_achievement(db, user.id, "MYSTERY_BADGE") is None

    async def test_keyed_type_needs_matching_key(self, sessions, user: TestUser):
        module_key = ModuleKey(module_id="m1", module_title="Kotlin")
        async with sessions() as db:
            assert await award_achievement(db, user.id, AchievementType.CHAPTER_COMPLETE) is None
            assert await award_achievement(db, user.id, AchievementType.CHAPTER_COMPLETE, module_key) is None

    async def test_persistence_failure_is_swallowed(self, sessions, user: TestUser, monkeypatch: pytest.MonkeyPatch):
        from lms.achievements import service

        async def broken(*args, **kwargs):
            raise RuntimeError("notification store down")

        monkeypatch.setattr(service, "create_notification", broken)
        async with sessions() as db:
            assert await award_achievement(db, user.id, AchievementType.FIRST_LESSON) is None
            await db.commit()
        assert await _count(sessions, Achievement, Achievement.user_id == user.id) == 0


class TestTimeAchievements:
    async def _add_seconds(self, sessions, user_id: str, *durations: int) -> None:
        async with sessions() as db:
            now = utcnow()
            for duration in durations:
                db.add(
                    LearningSession(
                        user_id=user_id,
                        start_time=now,
                        last_ping=now,
                        end_time=now,
                        duration=duration,
                        is_active=False,
                    )
                )
            await db.commit()

    async def test_thresholds(self, sessions, user: TestUser):
        await self._add_seconds(sessions, user.id, 3600, 300)
        async with sessions() as db:
            awarded = await check_time_achievements(db, user.id)
            await db.commit()
        assert [a.type for a in awarded] == ["TIME_1H"]

        await self._add_seconds(sessions, user.id, *([3600] * 9))
        async with sessions() as db:
            awarded = await check_time_achievements(db, user.id)
            await db.commit()
        assert [a.type for a in awarded] == ["TIME_5H", "TIME_10H"]

    async def test_below_first_threshold(self, sessions, user: TestUser):
        await self._add_seconds(sessions, user.id, 3599)
        async with sessions() as db:
            assert await check_time_achievements(db, user.id) == []

    async def test_unfinalized_sessions_do_not_count(self, sessions, user: TestUser):
        async with sessions() as db:
            now = utcnow()
            db.add(LearningSession(user_id=user.id, start_time=now, last_ping=now, is_active=True))
            await db.commit()
            assert await check_time_achievements(db, user.id) == []


class TestAchievementApi:
    async def test_list(self, client: AsyncClient, sessions, user: TestUser):
        async with sessions() as db:
            await award_achievement(db, user.id, AchievementType.FIRST_LESSON)
            await db.commit()
        response = await client.get("/api/v1/achievements", headers=user.headers)
        assert response.status_code == 200
        data = response.json()
        assert [a["type"] for a in data["achievements"]] == ["FIRST_LESSON"]
        assert data["totalLearningMinutes"] == 0
        assert len(data["availableBadges"]) == len(AchievementType)

    async def test_select_owned_badge(self, client: AsyncClient, sessions, user: TestUser):
        async with sessions() as db:
            achievement = await award_achievement(db, user.id, AchievementType.FIRST_LESSON)
            await db.commit()
        response = await client.put(
            "/api/v1/achievements/badge", headers=user.headers, json={"achievementId": achievement.id}
        )
        assert response.status_code == 200
        me = await client.get("/api/v1/auth/me", headers=user.headers)
        assert me.json()["user"]["profile"]["selectedBadge"] == achievement.id

    async def test_select_foreign_badge(self, client: AsyncClient, sessions, user: TestUser, make_user):
        other = await make_user("bob")
        async with sessions() as db:
            achievement = await award_achievement(db, other.id, AchievementType.FIRST_LESSON)
            await db.commit()
        response = await client.put(
            "/api/v1/achievements/badge", headers=user.headers, json={"achievementId": achievement.id}
        )
        assert response.status_code == 404
