"""Authentication endpoints: register, login, current user."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from lms.auth.dependencies import get_current_user
from lms.auth.jwt import create_access_token
from lms.auth.schemas import LoginRequest, RegisterRequest, user_payload
from lms.auth.service import authenticate, register_user
from lms.database import get_session
from lms.db.models import User

router = APIRouter(prefix="/api/v1/auth", tags=["Auth"])


@router.post("/register", status_code=201)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_session),
) -> dict:
    user = await register_user(db, body.email, body.username, body.password, body.nickname)
    await db.commit()
    return {
        "message": "User registered successfully",
        "user": user_payload(user),
        "token": create_access_token(user.id, user.role),
    }


@router.post("/login")
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_session),
) -> dict:
    user = await authenticate(db, body.email, body.password)
    return {
        "message": "Login successful",
        "user": user_payload(user),
        "token": create_access_token(user.id, user.role),
    }


@router.get("/me")
async def me(user: User = Depends(get_current_user)) -> dict:
    return {"user": user_payload(user)}
