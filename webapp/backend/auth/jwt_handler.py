"""
JWT token creation and validation using python-jose.

Tokens carry the user id in `sub` plus the user's role, so route guards can
reject wrong-role callers before touching the database.
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, JWTError

DEV_SECRET_KEY = "dev-secret-key-change-in-production"
SECRET_KEY = os.getenv("JWT_SECRET_KEY", DEV_SECRET_KEY)
ALGORITHM = "HS256"

# Refuse to start in production with the development secret
_ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
if _ENVIRONMENT == "production" and SECRET_KEY == DEV_SECRET_KEY:
    raise RuntimeError(
        "SECURITY ERROR: JWT_SECRET_KEY environment variable must be set in production."
    )

ACCESS_TOKEN_EXPIRE_HOURS = int(os.getenv("ACCESS_TOKEN_EXPIRE_HOURS", "4"))
REFRESH_GRACE_PERIOD_MINUTES = 15  # Expired tokens may still be refreshed within this window


def _decode_unverified_exp(token: str) -> Optional[dict]:
    """Decode a token checking the signature but not the expiry."""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM], options={"verify_exp": False})
    except JWTError:
        return None


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a signed access token.

    Args:
        data: Claims to embed (sub, email, role)
        expires_delta: Optional custom lifetime

    Returns:
        Encoded JWT string
    """
    now = datetime.now(timezone.utc)
    claims = dict(data)
    claims["exp"] = now + (expires_delta or timedelta(hours=ACCESS_TOKEN_EXPIRE_HOURS))
    claims["iat"] = now
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)


def create_user_token(user) -> str:
    """Access token for a User row."""
    return create_access_token({"sub": str(user.id), "email": user.email, "role": user.role})


def verify_token(token: str) -> Optional[dict]:
    """Decoded claims if the token is valid and unexpired, else None."""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None


def get_token_time_remaining(token: str) -> Optional[int]:
    """Seconds until the token expires (negative once expired), or None if invalid."""
    payload = _decode_unverified_exp(token)
    if not payload or not payload.get("exp"):
        return None
    return int(payload["exp"] - datetime.now(timezone.utc).timestamp())


def can_refresh_token(token: str) -> bool:
    """A token is refreshable while valid, or up to the grace period after expiry."""
    remaining = get_token_time_remaining(token)
    if remaining is None:
        return False
    return remaining > -REFRESH_GRACE_PERIOD_MINUTES * 60


def create_refreshed_token(old_token: str) -> Optional[str]:
    """New token with the same claims and a fresh expiry, or None if not refreshable."""
    if not can_refresh_token(old_token):
        return None
    payload = _decode_unverified_exp(old_token)
    if payload is None:
        return None
    payload.pop("exp", None)
    payload.pop("iat", None)
    return create_access_token(payload)
