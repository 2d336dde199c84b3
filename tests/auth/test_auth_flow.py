"""Register, login and the current-user endpoint."""

from datetime import datetime, timedelta, timezone

import jwt
from httpx import AsyncClient
from sqlalchemy import select

from lms.auth.jwt import create_access_token, verify_token
from lms.config import get_settings
from lms.db.models import UserSubscription
from tests.conftest import PASSWORD, TestUser


class TestRegister:
    async def test_register_creates_profile_and_basic_subscription(self, client: AsyncClient, sessions):
        response = await client.post(
            "/api/v1/auth/register",
            json={"email": "Bob@Example.com", "username": "bob", "password": PASSWORD, "nickname": "Bobby"},
        )
        assert response.status_code == 201
        data = response.json()
        assert data["user"]["email"] == "bob@example.com"
        assert data["user"]["role"] == "USER"
        assert data["user"]["profile"]["nickname"] == "Bobby"
        assert "passwordHash" not in data["user"]
        assert verify_token(data["token"])["sub"] == data["user"]["id"]

        async with sessions() as db:
            subscription = (
                await db.execute(select(UserSubscription).where(UserSubscription.user_id == data["user"]["id"]))
            ).scalar_one()
            assert subscription.tier.name == "BASIC"
            assert subscription.status == "ACTIVE"

    async def test_nickname_defaults_to_username(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/auth/register",
            json={"email": "carol@example.com", "username": "carol", "password": PASSWORD},
        )
        assert response.json()["user"]["profile"]["nickname"] == "carol"

    async def test_duplicate_email_conflicts(self, client: AsyncClient, user: TestUser):
        response = await client.post(
            "/api/v1/auth/register",
            json={"email": user.email.upper(), "username": "someone_else", "password": PASSWORD},
        )
        assert response.status_code == 409
        assert response.json()["code"] == "ConflictError"
        assert "Email" in response.json()["detail"]

    async def test_duplicate_username_conflicts(self, client: AsyncClient, user: TestUser):
        response = await client.post(
            "/api/v1/auth/register",
            json={"email": "fresh@example.com", "username": user.username, "password": PASSWORD},
        )
        assert response.status_code == 409
        assert "Username" in response.json()["detail"]

    async def test_weak_password_rejected(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/auth/register",
            json={"email": "weak@example.com", "username": "weakling", "password": "abc"},
        )
        assert response.status_code == 400
        assert response.json()["code"] == "PasswordStrengthError"


class TestLogin:
    async def test_login_success(self, client: AsyncClient, user: TestUser):
        response = await client.post("/api/v1/auth/login", json={"email": user.email, "password": PASSWORD})
        assert response.status_code == 200
        assert response.json()["user"]["id"] == user.id
        assert response.json()["token"]

    async def test_wrong_password(self, client: AsyncClient, user: TestUser):
        response = await client.post("/api/v1/auth/login", json={"email": user.email, "password": "nope-nope"})
        assert response.status_code == 401
        assert response.json() == {"detail": "Invalid email or password", "code": "AuthError"}

    async def test_unknown_email(self, client: AsyncClient):
        response = await client.post("/api/v1/auth/login", json={"email": "ghost@example.com", "password": PASSWORD})
        assert response.status_code == 401


class TestMe:
    async def test_me(self, client: AsyncClient, user: TestUser):
        response = await client.get("/api/v1/auth/me", headers=user.headers)
        assert response.status_code == 200
        assert response.json()["user"]["username"] == user.username

    async def test_missing_token(self, client: AsyncClient):
        response = await client.get("/api/v1/auth/me")
        assert response.status_code == 401
        assert response.json()["detail"] == "No token provided"

    async def test_garbage_token(self, client: AsyncClient):
        response = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer garbage"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid token"

    async def test_expired_token(self, client: AsyncClient, user: TestUser):
        settings = get_settings()
        past = datetime.now(timezone.utc) - timedelta(hours=2)
        token = jwt.encode(
            {
                "sub": user.id,
                "iat": past,
                "exp": past + timedelta(minutes=1),
                "iss": settings.jwt_issuer,
                "type": "access",
            },
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
        )
        response = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Token expired"

    async def test_token_for_deleted_user(self, client: AsyncClient, database):
        token = create_access_token("00000000-0000-0000-0000-000000000000", "USER")
        response = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json()["detail"] == "User not found"
