"""
Unit Tests for Authentication Utilities
Tests password hashing and session token generation in isolation
"""

from datetime import timedelta

import pytest

from medclaim.utils.auth import (
    create_access_token,
    decode_token,
    get_password_hash,
    verify_password,
)

SECRET = "s" * 48


@pytest.mark.unit
class TestPasswordHashing:
    """Test password hashing and verification"""

    def test_password_hashing(self):
        """Test that passwords are hashed correctly"""
        password = "TestPassword123!"
        hashed = get_password_hash(password)

        assert hashed != password
        # bcrypt hash prefix
        assert hashed.startswith("$2b$")

    def test_password_verification(self):
        """Test that password verification works"""
        hashed = get_password_hash("TestPassword123!")

        assert verify_password("TestPassword123!", hashed) is True
        assert verify_password("WrongPassword123!", hashed) is False

    def test_different_passwords_different_hashes(self):
        """Test that the same password hashed twice produces different hashes"""
        hash1 = get_password_hash("pw123456")
        hash2 = get_password_hash("pw123456")

        assert hash1 != hash2
        assert verify_password("pw123456", hash1)
        assert verify_password("pw123456", hash2)

    def test_long_password_truncated_consistently(self):
        """Passwords beyond bcrypt's 72-byte limit still verify"""
        password = "x" * 100
        hashed = get_password_hash(password)

        assert verify_password(password, hashed)


@pytest.mark.unit
class TestSessionTokens:
    """Test token creation and decoding"""

    def test_create_access_token(self):
        token = create_access_token({"sub": "user123"}, SECRET)

        assert isinstance(token, str)
        assert len(token.split(".")) == 3

    def test_decode_valid_token(self):
        token = create_access_token({"sub": "user123", "email": "a@x.com"}, SECRET)
        payload = decode_token(token, SECRET)

        assert payload is not None
        assert payload["sub"] == "user123"
        assert payload["email"] == "a@x.com"
        assert payload["type"] == "access"
        assert "exp" in payload

    def test_decode_wrong_secret(self):
        token = create_access_token({"sub": "user123"}, SECRET)

        assert decode_token(token, "w" * 48) is None

    def test_decode_expired_token(self):
        token = create_access_token({"sub": "user123"}, SECRET, expires_delta=timedelta(seconds=-1))

        assert decode_token(token, SECRET) is None

    def test_decode_garbage(self):
        assert decode_token("not.a.token", SECRET) is None
