"""Shared test fixtures."""

from __future__ import annotations

import os
import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

os.environ["LMS_ENVIRONMENT"] = "test"
os.environ["LMS_LOG_FORMAT"] = "console"
os.environ["LMS_LOG_LEVEL"] = "WARNING"

from lms.config import get_settings  # noqa: E402
from lms.database import close_db, get_engine, get_session_factory, init_db  # noqa: E402
from lms.db.base import Base  # noqa: E402
from lms.db.models import ROLE_ADMIN, Chapter, Lesson, Module, User  # noqa: E402
from lms.main import create_app  # noqa: E402
from lms.subscriptions.seed import seed_tiers  # noqa: E402

get_settings.cache_clear()

PASSWORD = "secret123"


@dataclass
class TestUser:
    """A registered account with its bearer token."""

    __test__ = False

    id: str
    email: str
    username: str
    token: str

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


@dataclass
class Course:
    """Seeded catalogue content: ids of modules, chapters and lessons."""

    module_id: str
    chapter_id: str
    lesson_ids: list[str]
    other_module_ids: list[str]
    other_lesson_ids: list[str]


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncGenerator[None, None]:
    """Fresh SQLite file per test with schema and subscription tiers."""
    await init_db(f"sqlite+aiosqlite:///{tmp_path / 'lms.db'}")
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with get_session_factory()() as db:
        await seed_tiers(db)
    yield
    await close_db()


@pytest.fixture
def sessions(database: None) -> async_sessionmaker[AsyncSession]:
    """Session factory for direct assertions. Open one short-lived session per check."""
    return get_session_factory()


@pytest_asyncio.fixture
async def client(database: None) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against a fresh app (no lifespan: DB is set up by ``database``)."""
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


async def register(client: AsyncClient, username: str | None = None, **extra: Any) -> TestUser:  # noqa: ANN401
    username = username or f"user_{uuid.uuid4().hex[:8]}"
    email = extra.pop("email", f"{username}@example.com")
    response = await client.post(
        "/api/v1/auth/register",
        json={"email": email, "username": username, "password": PASSWORD, **extra},
    )
    assert response.status_code == 201, response.text
    data = response.json()
    return TestUser(id=data["user"]["id"], email=email, username=username, token=data["token"])


@pytest_asyncio.fixture
async def make_user(client: AsyncClient) -> Callable[..., Awaitable[TestUser]]:
    async def _make(username: str | None = None, **extra: Any) -> TestUser:  # noqa: ANN401
        return await register(client, username, **extra)

    return _make


@pytest_asyncio.fixture
async def user(make_user: Callable[..., Awaitable[TestUser]]) -> TestUser:
    return await make_user("alice")


@pytest_asyncio.fixture
async def admin(
    make_user: Callable[..., Awaitable[TestUser]],
    sessions: async_sessionmaker[AsyncSession],
) -> TestUser:
    account = await make_user("root_admin")
    async with sessions() as db:
        await db.execute(update(User).where(User.id == account.id).values(role=ROLE_ADMIN))
        await db.commit()
    return account


async def create_module(
    db: AsyncSession,
    title: str,
    chapters: list[int],
    category: str = "ANDROID_DEV",
) -> tuple[Module, list[Chapter], list[Lesson]]:
    """Create a module with one chapter per entry, each holding that many lessons."""
    module = Module(title=title, slug=title.lower().replace(" ", "-"), description=f"{title} module", category=category)
    db.add(module)
    await db.flush()
    created_chapters: list[Chapter] = []
    created_lessons: list[Lesson] = []
    for c, lesson_count in enumerate(chapters, start=1):
        chapter = Chapter(module_id=module.id, title=f"{title} chapter {c}", order=c)
        db.add(chapter)
        await db.flush()
        created_chapters.append(chapter)
        for n in range(1, lesson_count + 1):
            lesson = Lesson(chapter_id=chapter.id, title=f"{title} {c}.{n}", content=f"Content {c}.{n}", order=n)
            db.add(lesson)
            created_lessons.append(lesson)
    await db.flush()
    return module, created_chapters, created_lessons


@pytest_asyncio.fixture
async def course(sessions: async_sessionmaker[AsyncSession]) -> Course:
    """Module "Kotlin Basics" (1 chapter, 2 lessons) plus three single-lesson modules."""
    async with sessions() as db:
        module, chapters, lessons = await create_module(db, "Kotlin Basics", [2])
        others = [await create_module(db, title, [1]) for title in ("Swift Intro", "React Intro", "Git Basics")]
        await db.commit()
        return Course(
            module_id=module.id,
            chapter_id=chapters[0].id,
            lesson_ids=[l.id for l in lessons],
            other_module_ids=[m.id for m, _, _ in others],
            other_lesson_ids=[ls[0].id for _, _, ls in others],
        )


async def tier_id(client: AsyncClient, name: str) -> str:
    response = await client.get("/api/v1/subscriptions/tiers")
    return next(t["id"] for t in response.json()["tiers"] if t["name"] == name)
