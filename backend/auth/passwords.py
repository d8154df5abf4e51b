import secrets
from datetime import datetime, timedelta

from passlib.context import CryptContext

from backend.core import config

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def generate_otp() -> tuple[str, datetime]:
    """Return a 6-digit passcode and its expiry."""
    otp = f"{secrets.randbelow(900000) + 100000}"
    return otp, datetime.utcnow() + timedelta(minutes=config.OTP_EXPIRES_MINUTES)


def otp_matches(expected: str | None, expires: datetime | None, supplied: str, now: datetime | None = None) -> bool:
    if not expected or expires is None:
        return False
    if expires < (now or datetime.utcnow()):
        return False
    return secrets.compare_digest(expected, supplied.strip())
