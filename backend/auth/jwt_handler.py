from datetime import datetime, timedelta, timezone

import jwt

from backend.core import config

ACCESS_TOKEN_TYPE = "access"
PENDING_TOKEN_TYPE = "pending"


def _encode(claims: dict, expires_minutes: int) -> str:
    now = datetime.now(timezone.utc)
    payload = {**claims, "exp": now + timedelta(minutes=expires_minutes), "iat": now}
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def create_access_token(user_id: int, role: str, expires_minutes: int | None = None) -> str:
    expire_minutes = expires_minutes or config.JWT_EXPIRES_MINUTES
    return _encode({"sub": str(user_id), "role": role, "typ": ACCESS_TOKEN_TYPE}, expire_minutes)


def create_pending_token(user_id: int, email: str) -> str:
    """Short-lived token proving the password step of a two-factor signin."""
    return _encode(
        {"sub": str(user_id), "email": email, "typ": PENDING_TOKEN_TYPE},
        config.PENDING_TOKEN_EXPIRES_MINUTES,
    )


def decode_access_token(token: str) -> dict:
    return decode_token(token, ACCESS_TOKEN_TYPE)


def decode_token(token: str, expected_type: str) -> dict:
    payload = jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
    if payload.get("typ") != expected_type:
        raise jwt.InvalidTokenError(f"Expected a {expected_type} token")
    return payload
