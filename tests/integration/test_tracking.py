"""Learning-session tracking: single active session, heartbeats, clamping."""

import logging
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select, update

from lms.db.models import LearningSession
from lms.tracking.service import MAX_SESSION_SECONDS, clamp_duration, is_stale
from lms.utils import utcnow
from tests.conftest import Course, TestUser

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class TestClampDuration:
    @pytest.mark.parametrize(
        ("elapsed", "expected"),
        [
            (timedelta(0), 0),
            (timedelta(seconds=90, milliseconds=900), 90),
            (timedelta(hours=1), 3600),
            (timedelta(hours=5), MAX_SESSION_SECONDS),
            (timedelta(seconds=-30), 0),
        ],
    )
    def test_bounds(self, elapsed: timedelta, expected: int):
        assert clamp_duration(T0, T0 + elapsed) == expected

    def test_naive_and_aware_mix(self):
        assert clamp_duration(T0.replace(tzinfo=None), T0 + timedelta(minutes=2)) == 120

    def test_stale_after_two_minutes(self):
        session = LearningSession(last_ping=T0)
        assert not is_stale(session, T0 + timedelta(minutes=2))
        assert is_stale(session, T0 + timedelta(minutes=2, seconds=1))


async def _start(client: AsyncClient, user: TestUser, lesson_id: str, module_id: str | None = None):
    body = {"lessonId": lesson_id}
    if module_id is not None:
        body["moduleId"] = module_id
    return await client.post("/api/v1/sessions/start", headers=user.headers, json=body)


class TestSessionLifecycle:
    async def test_start(self, client: AsyncClient, user: TestUser, course: Course):
        response = await _start(client, user, course.lesson_ids[0])
        assert response.status_code == 200
        session = response.json()["session"]
        assert session["isActive"] is True
        assert session["moduleId"] == course.module_id
        assert session["duration"] is None

    async def test_single_active_session(self, client: AsyncClient, user: TestUser, course: Course, sessions):
        first = (await _start(client, user, course.lesson_ids[0])).json()["session"]
        await _start(client, user, course.lesson_ids[1])
        await _start(client, user, course.other_lesson_ids[0])

        async with sessions() as db:
            active = (
                await db.execute(
                    select(func.count(LearningSession.id)).where(
                        LearningSession.user_id == user.id,
                        LearningSession.is_active.is_(True),
                    )
                )
            ).scalar()
            closed = await db.get(LearningSession, first["id"])
        assert active == 1
        assert closed.is_active is False
        assert closed.end_time is not None
        assert closed.duration is not None

    async def test_sessions_of_other_users_untouched(
        self, client: AsyncClient, user: TestUser, make_user, course: Course, sessions
    ):
        other = await make_user("bob")
        await _start(client, other, course.lesson_ids[0])
        await _start(client, user, course.lesson_ids[0])
        async with sessions() as db:
            active = (
                await db.execute(select(func.count(LearningSession.id)).where(LearningSession.is_active.is_(True)))
            ).scalar()
        assert active == 2

    async def test_unknown_lesson(self, client: AsyncClient, user: TestUser, course: Course):
        response = await _start(client, user, "missing")
        assert response.status_code == 404
        assert response.json()["code"] == "LessonNotFound"

    async def test_module_mismatch(self, client: AsyncClient, user: TestUser, course: Course):
        response = await _start(client, user, course.lesson_ids[0], course.other_module_ids[0])
        assert response.status_code == 400

    async def test_heartbeat_keeps_alive(self, client: AsyncClient, user: TestUser, course: Course):
        session_id = (await _start(client, user, course.lesson_ids[0])).json()["session"]["id"]
        response = await client.post("/api/v1/sessions/heartbeat", headers=user.headers, json={"sessionId": session_id})
        assert response.status_code == 200
        assert response.json() == {"sessionActive": True}

    async def test_stale_heartbeat_closes_at_last_ping(
        self, client: AsyncClient, user: TestUser, course: Course, sessions
    ):
        session_id = (await _start(client, user, course.lesson_ids[0])).json()["session"]["id"]
        now = utcnow()
        async with sessions() as db:
            await db.execute(
                update(LearningSession)
                .where(LearningSession.id == session_id)
                .values(start_time=now - timedelta(minutes=10), last_ping=now - timedelta(minutes=3))
            )
            await db.commit()

        response = await client.post("/api/v1/sessions/heartbeat", headers=user.headers, json={"sessionId": session_id})
        assert response.status_code == 200
        data = response.json()
        assert data["sessionEnded"] is True
        assert data["duration"] == 7 * 60

        async with sessions() as db:
            closed = await db.get(LearningSession, session_id)
        assert closed.is_active is False
        assert closed.duration == 7 * 60

        again = await client.post("/api/v1/sessions/heartbeat", headers=user.headers, json={"sessionId": session_id})
        assert again.status_code == 404
        assert again.json()["code"] == "SessionNotFound"

    async def test_stale_close_logs_event(
        self, client: AsyncClient, user: TestUser, course: Course, sessions, caplog: pytest.LogCaptureFixture
    ):
        session_id = (await _start(client, user, course.lesson_ids[0])).json()["session"]["id"]
        now = utcnow()
        async with sessions() as db:
            await db.execute(
                update(LearningSession)
                .where(LearningSession.id == session_id)
                .values(start_time=now - timedelta(minutes=5), last_ping=now - timedelta(minutes=3))
            )
            await db.commit()

        caplog.set_level(logging.INFO)
        response = await client.post("/api/v1/sessions/heartbeat", headers=user.headers, json={"sessionId": session_id})
        assert response.json()["sessionEnded"] is True
        assert any("session_closed_stale" in record.getMessage() for record in caplog.records)

    async def test_stale_duration_is_clamped(self, client: AsyncClient, user: TestUser, course: Course, sessions):
        session_id = (await _start(client, user, course.lesson_ids[0])).json()["session"]["id"]
        now = utcnow()
        async with sessions() as db:
            await db.execute(
                update(LearningSession)
                .where(LearningSession.id == session_id)
                .values(start_time=now - timedelta(hours=4), last_ping=now - timedelta(minutes=5))
            )
            await db.commit()
        response = await client.post("/api/v1/sessions/heartbeat", headers=user.headers, json={"sessionId": session_id})
        assert response.json()["duration"] == MAX_SESSION_SECONDS

    async def test_end_returns_duration(self, client: AsyncClient, user: TestUser, course: Course, sessions):
        session_id = (await _start(client, user, course.lesson_ids[0])).json()["session"]["id"]
        async with sessions() as db:
            await db.execute(
                update(LearningSession)
                .where(LearningSession.id == session_id)
                .values(start_time=utcnow() - timedelta(minutes=30))
            )
            await db.commit()
        response = await client.post("/api/v1/sessions/end", headers=user.headers, json={"sessionId": session_id})
        assert response.status_code == 200
        assert 30 * 60 <= response.json()["duration"] <= 30 * 60 + 5

    async def test_cannot_end_foreign_session(self, client: AsyncClient, user: TestUser, make_user, course: Course):
        other = await make_user("bob")
        session_id = (await _start(client, other, course.lesson_ids[0])).json()["session"]["id"]
        response = await client.post("/api/v1/sessions/end", headers=user.headers, json={"sessionId": session_id})
        assert response.status_code == 404

    async def test_long_session_awards_time_badge(
        self, client: AsyncClient, user: TestUser, course: Course, sessions
    ):
        session_id = (await _start(client, user, course.lesson_ids[0])).json()["session"]["id"]
        async with sessions() as db:
            await db.execute(
                update(LearningSession)
                .where(LearningSession.id == session_id)
                .values(start_time=utcnow() - timedelta(hours=2))
            )
            await db.commit()
        await client.post("/api/v1/sessions/end", headers=user.headers, json={"sessionId": session_id})

        data = (await client.get("/api/v1/achievements", headers=user.headers)).json()
        assert data["totalLearningMinutes"] == 60
        assert [a["type"] for a in data["achievements"]] == ["TIME_1H"]

    async def test_stats(self, client: AsyncClient, user: TestUser, course: Course, sessions):
        session_id = (await _start(client, user, course.lesson_ids[0])).json()["session"]["id"]
        async with sessions() as db:
            await db.execute(
                update(LearningSession)
                .where(LearningSession.id == session_id)
                .values(start_time=utcnow() - timedelta(minutes=90))
            )
            await db.commit()
        await client.post("/api/v1/sessions/end", headers=user.headers, json={"sessionId": session_id})
        await _start(client, user, course.lesson_ids[1])

        response = await client.get("/api/v1/sessions/stats", headers=user.headers)
        assert response.status_code == 200
        data = response.json()
        assert data["sessionCount"] == 1
        assert data["totalSeconds"] == 3600
        assert data["totalMinutes"] == 60
        assert data["totalHours"] == 1
        assert data["byModule"] == {course.module_id: 3600}
