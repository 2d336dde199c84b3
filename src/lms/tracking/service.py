"""Learning-session time tracking.

A user has at most one active session. Clients ping every minute or so;
a session whose last ping is older than ``STALE_AFTER`` is closed at its
last ping, not at detection time. Each session contributes at most
``MAX_SESSION_SECONDS`` to the user's learning time.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lms.achievements.service import check_time_achievements
from lms.db.models import Chapter, LearningSession, Lesson
from lms.errors import LessonNotFound, SessionNotFound, ValidationError
from lms.utils import as_utc, isoformat, utcnow

logger = structlog.get_logger()

STALE_AFTER = timedelta(minutes=2)
MAX_SESSION_SECONDS = 3600


def clamp_duration(start: datetime, end: datetime) -> int:
    """Whole seconds from start to end, clamped to [0, MAX_SESSION_SECONDS]."""
    seconds = (as_utc(end) - as_utc(start)).total_seconds()
    return max(0, min(int(seconds), MAX_SESSION_SECONDS))


def is_stale(session: LearningSession, now: datetime) -> bool:
    return as_utc(now) - as_utc(session.last_ping) > STALE_AFTER


def serialize_session(session: LearningSession) -> dict[str, Any]:
    return {
        "id": session.id,
        "userId": session.user_id,
        "lessonId": session.lesson_id,
        "moduleId": session.module_id,
        "startTime": isoformat(session.start_time),
        "lastPing": isoformat(session.last_ping),
        "endTime": isoformat(session.end_time),
        "duration": session.duration,
        "isActive": session.is_active,
    }


class SessionTracker:
    """Session state transitions for one request."""

    def __init__(self, db: AsyncSession, redis: Any | None = None) -> None:  # noqa: ANN401
        self.db = db
        self.redis = redis

    async def _owned(self, user_id: str, session_id: str, *, active_only: bool) -> LearningSession:
        stmt = select(LearningSession).where(
            LearningSession.id == session_id,
            LearningSession.user_id == user_id,
        )
        if active_only:
            stmt = stmt.where(LearningSession.is_active.is_(True))
        session = (await self.db.execute(stmt)).scalar_one_or_none()
        if session is None:
            raise SessionNotFound()
        return session

    def _close(self, session: LearningSession, end_time: datetime) -> int:
        session.end_time = end_time
        session.duration = clamp_duration(session.start_time, end_time)
        session.is_active = False
        return session.duration

    async def _resolve_module(self, lesson_id: str, module_id: str | None) -> str:
        lesson = await self.db.get(Lesson, lesson_id)
        if lesson is None:
            raise LessonNotFound()
        chapter = await self.db.get(Chapter, lesson.chapter_id)
        if module_id is not None and module_id != chapter.module_id:
            raise ValidationError("Lesson does not belong to the given module")
        return chapter.module_id

    async def start(self, user_id: str, lesson_id: str, module_id: str | None = None) -> LearningSession:
        """Close any open session for the user, then open a new one."""
        module_id = await self._resolve_module(lesson_id, module_id)
        now = utcnow()

        open_sessions = await self.db.execute(
            select(LearningSession).where(
                LearningSession.user_id == user_id,
                LearningSession.is_active.is_(True),
            )
        )
        for previous in open_sessions.scalars().all():
            previous.end_time = now
            previous.is_active = False

        unfinalized = await self.db.execute(
            select(LearningSession).where(
                LearningSession.user_id == user_id,
                LearningSession.end_time.is_not(None),
                LearningSession.duration.is_(None),
            )
        )
        finalized = 0
        for previous in unfinalized.scalars().all():
            previous.duration = clamp_duration(previous.start_time, previous.end_time)
            finalized += 1
        await self.db.flush()
        if finalized:
            logger.info("sessions_finalized", user_id=user_id, count=finalized)
            await check_time_achievements(self.db, user_id, redis=self.redis)

        session = LearningSession(
            user_id=user_id,
            lesson_id=lesson_id,
            module_id=module_id,
            start_time=now,
            last_ping=now,
            is_active=True,
        )
        self.db.add(session)
        await self.db.flush()
        return session

    async def heartbeat(self, user_id: str, session_id: str) -> dict[str, Any]:
        """Keep an active session alive, or close it at its last ping if it went stale."""
        session = await self._owned(user_id, session_id, active_only=True)
        now = utcnow()

        if is_stale(session, now):
            duration = self._close(session, session.last_ping)
            await self.db.flush()
            logger.info("session_closed_stale", session_id=session.id, user_id=user_id, duration=duration)
            await check_time_achievements(self.db, user_id, redis=self.redis)
            return {
                "sessionEnded": True,
                "message": "Session was stale and has been ended",
                "duration": duration,
            }

        session.last_ping = now
        await self.db.flush()
        return {"sessionActive": True}

    async def end(self, user_id: str, session_id: str) -> int:
        """Close an owned session now. Returns the recorded duration in seconds."""
        session = await self._owned(user_id, session_id, active_only=False)
        duration = self._close(session, utcnow())
        await self.db.flush()
        await check_time_achievements(self.db, user_id, redis=self.redis)
        return duration

    async def stats(self, user_id: str) -> dict[str, Any]:
        """Totals over finalized sessions, with seconds per module."""
        result = await self.db.execute(
            select(LearningSession.module_id, LearningSession.duration).where(
                LearningSession.user_id == user_id,
                LearningSession.duration.is_not(None),
            )
        )
        rows = result.all()
        by_module: dict[str, int] = defaultdict(int)
        for module_id, duration in rows:
            by_module[module_id or "unknown"] += duration
        total = sum(duration for _, duration in rows)
        return {
            "totalSeconds": total,
            "totalMinutes": total // 60,
            "totalHours": total // 3600,
            "sessionCount": len(rows),
            "byModule": dict(by_module),
        }
