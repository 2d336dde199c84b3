"""Profile and password updates for the signed-in user."""

from httpx import AsyncClient

from tests.conftest import PASSWORD, TestUser


class TestProfileUpdate:
    async def test_partial_update_keeps_other_fields(self, client: AsyncClient, user: TestUser):
        response = await client.put("/api/v1/users/me/profile", headers=user.headers, json={"bio": "Hello"})
        assert response.status_code == 200
        profile = response.json()["user"]["profile"]
        assert profile["bio"] == "Hello"
        assert profile["nickname"] == user.username
        assert profile["avatarUrl"] is None

    async def test_email_change(self, client: AsyncClient, user: TestUser):
        response = await client.put(
            "/api/v1/users/me/profile", headers=user.headers, json={"email": "New.Address@example.com"}
        )
        assert response.status_code == 200
        assert response.json()["user"]["email"] == "new.address@example.com"

        login = await client.post("/api/v1/auth/login", json={"email": "new.address@example.com", "password": PASSWORD})
        assert login.status_code == 200

    async def test_email_taken_by_other_user(self, client: AsyncClient, user: TestUser, make_user):
        other = await make_user("bob")
        response = await client.put("/api/v1/users/me/profile", headers=user.headers, json={"email": other.email})
        assert response.status_code == 409
        assert response.json()["detail"] == "Email already in use"

    async def test_complete_profile_awards_badge_once(self, client: AsyncClient, user: TestUser):
        body = {"nickname": "Ali", "bio": "Learner", "avatarUrl": "https://cdn.example.com/a.png"}
        first = await client.put("/api/v1/users/me/profile", headers=user.headers, json=body)
        assert first.status_code == 200
        again = await client.put("/api/v1/users/me/profile", headers=user.headers, json={"bio": "Still learning"})
        assert again.status_code == 200

        achievements = (await client.get("/api/v1/achievements", headers=user.headers)).json()["achievements"]
        assert [a["type"] for a in achievements] == ["PROFILE_COMPLETE"]

    async def test_incomplete_profile_awards_nothing(self, client: AsyncClient, user: TestUser):
        await client.put("/api/v1/users/me/profile", headers=user.headers, json={"bio": "Only a bio"})
        achievements = (await client.get("/api/v1/achievements", headers=user.headers)).json()["achievements"]
        assert achievements == []

    async def test_requires_auth(self, client: AsyncClient):
        response = await client.put("/api/v1/users/me/profile", json={"bio": "x"})
        assert response.status_code == 401


class TestChangePassword:
    async def test_change_password(self, client: AsyncClient, user: TestUser):
        response = await client.put(
            "/api/v1/users/me/password",
            headers=user.headers,
            json={"currentPassword": PASSWORD, "newPassword": "brand-new-pass"},
        )
        assert response.status_code == 200

        old = await client.post("/api/v1/auth/login", json={"email": user.email, "password": PASSWORD})
        new = await client.post("/api/v1/auth/login", json={"email": user.email, "password": "brand-new-pass"})
        assert old.status_code == 401
        assert new.status_code == 200

    async def test_wrong_current_password(self, client: AsyncClient, user: TestUser):
        response = await client.put(
            "/api/v1/users/me/password",
            headers=user.headers,
            json={"currentPassword": "not-it-at-all", "newPassword": "brand-new-pass"},
        )
        assert response.status_code == 401

    async def test_weak_new_password(self, client: AsyncClient, user: TestUser):
        response = await client.put(
            "/api/v1/users/me/password",
            headers=user.headers,
            json={"currentPassword": PASSWORD, "newPassword": "abc"},
        )
        assert response.status_code == 400
        assert response.json()["code"] == "PasswordStrengthError"
