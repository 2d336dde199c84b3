"""HS256 access tokens.

The token carries the user id in ``sub`` and the role in ``role``; the role
claim is informational only, authorization always re-reads the user row.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from lms.config import get_settings


def create_access_token(user_id: str, role: str) -> str:
    """Create a signed access token for ``user_id``."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": user_id,
        "role": role,
        "iat": now,
        "exp": now + timedelta(minutes=settings.jwt_access_token_expire_minutes),
        "iss": settings.jwt_issuer,
        "type": "access",
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str, expected_type: str = "access") -> dict[str, Any]:
    """
    Decode and validate a token.

    Raises:
        jwt.ExpiredSignatureError: the token is past ``exp``.
        jwt.InvalidTokenError: bad signature, issuer, or token type.
    """
    settings = get_settings()
    payload: dict[str, Any] = jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
        issuer=settings.jwt_issuer,
        options={"require": ["exp", "iat", "sub", "iss"]},
    )
    if payload.get("type") != expected_type:
        msg = f"Expected {expected_type} token"
        raise jwt.InvalidTokenError(msg)
    return payload
