"""Access token issue and verification."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from lms.auth.jwt import create_access_token, verify_token
from lms.config import get_settings


class TestAccessToken:
    def test_create_and_verify(self):
        token = create_access_token("user-1", "USER")
        payload = verify_token(token)
        assert payload["sub"] == "user-1"
        assert payload["role"] == "USER"
        assert payload["type"] == "access"

    def test_wrong_type_rejected(self):
        settings = get_settings()
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"sub": "u", "iat": now, "exp": now + timedelta(minutes=5), "iss": settings.jwt_issuer, "type": "reset"},
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
        )
        with pytest.raises(jwt.InvalidTokenError, match="Expected access token"):
            verify_token(token)

    def test_foreign_secret_rejected(self):
        token = jwt.encode({"sub": "u"}, "another-secret-of-sufficient-length-000000", algorithm="HS256")
        with pytest.raises(jwt.InvalidTokenError):
            verify_token(token)
