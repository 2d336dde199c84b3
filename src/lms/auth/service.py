"""
Authentication business logic.

Registration creates the user, an empty profile, and a BASIC subscription in
one unit of work, so every registered user can enroll immediately.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlalchemy import func, or_, select

from lms.auth.password import hash_password, validate_password_strength, verify_password
from lms.db.models import ROLE_USER, Profile, User
from lms.errors import AuthError, ConflictError
from lms.subscriptions.service import provision_basic

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()


# ---------------------------------------------------------------------------
# User queries
# ---------------------------------------------------------------------------


async def get_user_by_id(db: AsyncSession, user_id: str) -> User | None:
    return await db.get(User, user_id)


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    """Fetch a user by email (case-insensitive)."""
    result = await db.execute(select(User).where(func.lower(User.email) == email.lower()))
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Registration & login
# ---------------------------------------------------------------------------


async def register_user(
    db: AsyncSession,
    email: str,
    username: str,
    password: str,
    nickname: str | None = None,
) -> User:
    """Create a user with profile and BASIC subscription.

    Raises:
        PasswordStrengthError: password outside the configured bounds.
        ConflictError: email or username already taken.
    """
    validate_password_strength(password)
    email = email.lower().strip()

    existing = await db.execute(
        select(User.email, User.username).where(
            or_(func.lower(User.email) == email, User.username == username)
        )
    )
    row = existing.first()
    if row is not None:
        field = "Email" if row.email.lower() == email else "Username"
        raise ConflictError(f"{field} already registered")

    user = User(
        email=email,
        username=username,
        password_hash=hash_password(password),
        role=ROLE_USER,
        profile=Profile(nickname=nickname or username),
    )
    db.add(user)
    await db.flush()
    await provision_basic(db, user.id)

    logger.info("user_registered", user_id=user.id, username=username)
    return user


async def authenticate(db: AsyncSession, email: str, password: str) -> User:
    """Return the user for valid credentials; AuthError otherwise."""
    user = await get_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        logger.info("login_failed", email=email)
        raise AuthError("Invalid email or password")
    logger.info("login_succeeded", user_id=user.id)
    return user


async def change_password(db: AsyncSession, user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise AuthError("Current password is incorrect")
    validate_password_strength(new_password)
    user.password_hash = hash_password(new_password)
    await db.flush()
    logger.info("password_changed", user_id=user.id)
