"""
Authentication Utilities
Password hashing and session tokens for the demo identity provider.
Source: https://pypi.org/project/bcrypt/ and https://python-jose.readthedocs.io/
"""

from datetime import UTC, datetime, timedelta
from typing import Any

import bcrypt
from jose import JWTError, jwt


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash using bcrypt.

    Args:
        plain_password: Plain text password
        hashed_password: Bcrypt hashed password (string format)

    Returns:
        True if password matches, False otherwise

    Note: Bcrypt handles passwords up to 72 bytes. Longer passwords are
    truncated before hashing and verifying.
    """
    return bcrypt.checkpw(plain_password.encode("utf-8")[:72], hashed_password.encode("utf-8"))


def get_password_hash(password: str) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: Plain text password

    Returns:
        Bcrypt hashed password (string format)
    """
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(password.encode("utf-8")[:72], salt)
    return hashed.decode("utf-8")


def create_access_token(
    data: dict[str, Any],
    secret_key: str,
    algorithm: str = "HS256",
    expires_delta: timedelta | None = None,
) -> str:
    """
    Create a signed session token.

    Args:
        data: Token payload data
        secret_key: Signing key
        algorithm: JWT algorithm
        expires_delta: Optional custom expiration time (defaults to 60 minutes)

    Returns:
        Encoded JWT token
    """
    to_encode = data.copy()
    expire = datetime.now(UTC) + (expires_delta or timedelta(minutes=60))
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, secret_key, algorithm=algorithm)


def decode_token(token: str, secret_key: str, algorithm: str = "HS256") -> dict[Any, Any] | None:
    """
    Decode and verify a session token.

    Returns:
        Token payload if valid, None otherwise
    """
    try:
        return jwt.decode(token, secret_key, algorithms=[algorithm])
    except JWTError:
        return None
