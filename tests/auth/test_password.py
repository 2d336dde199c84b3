"""Password hashing and strength rules."""

import pytest

from lms.auth.password import (
    PasswordStrengthError,
    hash_password,
    validate_password_strength,
    verify_password,
)
from tests.conftest import PASSWORD


class TestPasswordRules:
    def test_hash_roundtrip(self):
        hashed = hash_password(PASSWORD)
        assert hashed != PASSWORD
        assert verify_password(PASSWORD, hashed)
        assert not verify_password("wrong-password", hashed)

    def test_malformed_hash_is_mismatch(self):
        assert verify_password(PASSWORD, "not-a-hash") is False

    @pytest.mark.parametrize("password", ["", "   ", "abc", "x" * 129])
    def test_rejects_out_of_bounds(self, password: str):
        with pytest.raises(PasswordStrengthError):
            validate_password_strength(password)

    def test_accepts_min_length(self):
        validate_password_strength("abcdef")
