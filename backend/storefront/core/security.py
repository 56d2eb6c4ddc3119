"""
Token helpers

Access tokens are issued by the auth service; this module only signs
(for tooling and tests) and verifies them. HS256 with SECRET_KEY.
"""
import hashlib
import hmac
from datetime import datetime, timedelta
from typing import Optional

import jwt

from storefront.core.config import settings
from storefront.logging_config import get_logger

logger = get_logger(__name__)


def create_access_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    """Sign an access token for ``user_id``."""
    expire = datetime.utcnow() + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload = {"sub": str(user_id), "type": "access", "exp": expire}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def get_user_from_token(token: str, expected_type: str = "access") -> Optional[int]:
    """
    Decode a token and return the user id it was issued for.

    Returns None for expired, tampered or wrong-type tokens.
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired token")
        return None
    except jwt.InvalidTokenError:
        logger.info("Rejected invalid token")
        return None

    if payload.get("type") != expected_type:
        return None
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        return None


def hash_token(token: str) -> str:
    """SHA-256 hex digest used to store refresh tokens."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def secrets_match(provided: Optional[str], expected: Optional[str]) -> bool:
    """Constant-time comparison; an unset secret never matches."""
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))
