"""
Bearer token utilities.

Tokens are issued by the platform's auth service and carry the caller's
designation and assigned location as claims. This service only verifies them;
`create_access_token` exists for tooling and tests that need a signed token.
"""

from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from georollup.core.config import settings
from georollup.core.logging_config import get_logger

logger = get_logger(__name__)


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """
    Create a JWT access token.

    Args:
        data: Claims to encode in the token
        expires_delta: Optional expiration time delta (defaults to one hour)

    Returns:
        Encoded JWT token string
    """
    to_encode = data.copy()
    expire = datetime.now(UTC) + (expires_delta or timedelta(hours=1))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any] | None:
    """
    Decode and verify a JWT access token.

    Args:
        token: JWT token string

    Returns:
        Decoded token payload or None if invalid
    """
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        logger.debug(f"Rejected bearer token: {e}")
        return None
