"""Public catalogue: modules, prerequisites, learning paths, roadmaps."""

import pytest_asyncio
from httpx import AsyncClient

from lms.db.models import LearningPath, ModulePrerequisite
from tests.conftest import Course


@pytest_asyncio.fixture
async def paths(sessions, course: Course) -> dict[str, str]:
    _swift, react, git = course.other_module_ids
    async with sessions() as db:
        android = LearningPath(
            title="Android Developer",
            description="From zero to Play Store",
            category="ANDROID_DEV",
            modules=[git, course.module_id, "deleted-module-id"],
            order=1,
        )
        web = LearningPath(title="Web Developer", modules=[git, react], order=2)
        db.add_all([android, web])
        db.add(ModulePrerequisite(module_id=course.module_id, prerequisite_id=git, order=1))
        await db.commit()
        return {"android": android.id, "web": web.id}


class TestModules:
    async def test_list_is_public_with_counts(self, client: AsyncClient, course: Course):
        response = await client.get("/api/v1/modules")
        assert response.status_code == 200
        modules = {m["id"]: m for m in response.json()["modules"]}
        assert len(modules) == 4
        kotlin = modules[course.module_id]
        assert kotlin["lessonCount"] == 2
        assert kotlin["studentCount"] == 0
        assert kotlin["slug"] == "kotlin-basics"

    async def test_detail_has_ordered_outline(self, client: AsyncClient, course: Course):
        response = await client.get(f"/api/v1/modules/{course.module_id}")
        assert response.status_code == 200
        module = response.json()["module"]
        assert module["lessonCount"] == 2
        [chapter] = module["chapters"]
        assert [l["id"] for l in chapter["lessons"]] == course.lesson_ids
        assert "content" not in chapter["lessons"][0]

    async def test_unknown_module(self, client: AsyncClient, database):
        response = await client.get("/api/v1/modules/missing")
        assert response.status_code == 404
        assert response.json()["code"] == "ModuleNotFound"

    async def test_prerequisites(self, client: AsyncClient, course: Course, paths):
        response = await client.get(f"/api/v1/modules/{course.module_id}/prerequisites")
        assert response.status_code == 200
        assert [m["id"] for m in response.json()["prerequisites"]] == [course.other_module_ids[2]]


class TestLearningPaths:
    async def test_list_resolves_modules_in_path_order(self, client: AsyncClient, course: Course, paths):
        response = await client.get("/api/v1/learning-paths")
        assert response.status_code == 200
        listed = response.json()["paths"]
        assert [p["id"] for p in listed] == [paths["android"], paths["web"]]
        android = listed[0]
        assert [m["id"] for m in android["moduleDetails"]] == [course.other_module_ids[2], course.module_id]
        assert "deleted-module-id" in android["modules"]

    async def test_detail(self, client: AsyncClient, paths):
        response = await client.get(f"/api/v1/learning-paths/{paths['web']}")
        assert response.status_code == 200
        assert response.json()["path"]["title"] == "Web Developer"

    async def test_detail_missing(self, client: AsyncClient, database):
        response = await client.get("/api/v1/learning-paths/nope")
        assert response.status_code == 404

    async def test_roadmap_neighbours(self, client: AsyncClient, course: Course, paths):
        git = course.other_module_ids[2]
        response = await client.get(f"/api/v1/modules/{git}/roadmap")
        assert response.status_code == 200
        roadmaps = {r["pathId"]: r for r in response.json()["roadmaps"]}
        assert set(roadmaps) == {paths["android"], paths["web"]}
        android = roadmaps[paths["android"]]
        assert android["currentPosition"] == 1
        assert android["totalModules"] == 2
        assert android["previous"] is None
        assert android["next"]["id"] == course.module_id
