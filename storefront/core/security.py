"""
Security utilities - JWT access tokens and signed checkout tokens
"""
import hashlib
import hmac
import secrets
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from storefront.core.config import settings


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token"""
    to_encode = data.copy()
    # Ensure sub is always a string for JWT spec compliance
    if "sub" in to_encode:
        to_encode["sub"] = str(to_encode["sub"])
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({
        "exp": expire,
        "type": "access",
        "jti": str(uuid.uuid4()),
        "iat": now,
    })
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Decode and validate JWT token"""
    try:
        return jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            options={"verify_sub": False}
        )
    except JWTError:
        return None


# ----------------------------------------------------------------------------
# Signed correlation tokens
#
# Format: {value}.{timestamp}.{nonce}.{signature}
# The signature is HMAC-SHA256 over value.timestamp.nonce with a key derived
# from SECRET_KEY, so the cookie cannot be forged or re-pointed at another
# checkout attempt.
# ----------------------------------------------------------------------------

def _checkout_signing_key() -> bytes:
    return hashlib.sha256(f"{settings.SECRET_KEY}_checkout".encode()).digest()


def _sign(message: str) -> str:
    return hmac.new(_checkout_signing_key(), message.encode(), hashlib.sha256).hexdigest()


def sign_checkout_value(value: str) -> str:
    """Sign a correlation value for storage in a client cookie."""
    timestamp = str(int(time.time()))
    nonce = secrets.token_hex(8)
    message = f"{value}.{timestamp}.{nonce}"
    return f"{message}.{_sign(message)}"


def unsign_checkout_value(token: Optional[str], max_age_seconds: int) -> Optional[str]:
    """
    Verify a signed correlation token.

    Returns the original value, or None if the token is malformed, tampered
    with or older than max_age_seconds.
    """
    if not token:
        return None

    try:
        value, timestamp_str, nonce, signature = token.rsplit(".", 3)
    except ValueError:
        return None

    expected = _sign(f"{value}.{timestamp_str}.{nonce}")
    if not hmac.compare_digest(signature, expected):
        return None

    try:
        timestamp = int(timestamp_str)
    except ValueError:
        return None

    if max_age_seconds > 0 and time.time() - timestamp > max_age_seconds:
        return None

    return value
