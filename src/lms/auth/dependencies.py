"""FastAPI authentication dependencies."""

from __future__ import annotations

import jwt
from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from lms.auth.jwt import verify_token
from lms.auth.service import get_user_by_id
from lms.database import get_session
from lms.db.models import User
from lms.errors import AuthError, ForbiddenError

_bearer = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> User:
    """Resolve the bearer token to a User. AuthError when missing, invalid, or expired."""
    if credentials is None:
        raise AuthError("No token provided")
    try:
        payload = verify_token(credentials.credentials, expected_type="access")
    except jwt.ExpiredSignatureError as e:
        raise AuthError("Token expired") from e
    except jwt.InvalidTokenError as e:
        raise AuthError("Invalid token") from e

    user = await get_user_by_id(db, str(payload["sub"]))
    if user is None:
        raise AuthError("User not found")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """Same as get_current_user, additionally requiring the ADMIN role."""
    if not user.is_admin:
        raise ForbiddenError("Admin access required")
    return user
