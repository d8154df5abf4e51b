import logging
import re

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from backend.auth import jwt_handler
from backend.auth.dependencies import get_current_user
from backend.auth.passwords import generate_otp, hash_password, otp_matches, verify_password
from backend.core import config
from backend.database import get_db
from backend.models.user import User
from backend.services.mailer import MailDeliveryError, Mailer, get_mailer

router = APIRouter(tags=["auth"])

logger = logging.getLogger(__name__)

ROLES = ("doctor", "patient")
MIN_PASSWORD_LENGTH = 6
_EMAIL_PATTERN = re.compile(r"^\S+@\S+\.\S+$")


def _normalize_email(value: str) -> str:
    normalized = value.strip().lower()
    if not _EMAIL_PATTERN.match(normalized):
        raise ValueError("A valid email address is required.")
    return normalized


class SignupRequest(BaseModel):
    name: str
    email: str
    password: str
    role: str

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Name is required")
        return normalized

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        return _normalize_email(value)

    @field_validator("password")
    @classmethod
    def validate_password(cls, value: str) -> str:
        if len(value) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        return value

    @field_validator("role")
    @classmethod
    def validate_role(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in ROLES:
            raise ValueError('Role must be either "doctor" or "patient"')
        return normalized


class EmailRequest(BaseModel):
    email: str

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        return _normalize_email(value)


class EmailOtpRequest(EmailRequest):
    otp: str


class SigninRequest(EmailRequest):
    password: str


class VerifyOtpRequest(EmailOtpRequest):
    pending_token: str = Field(alias="pendingToken")


class ResetPasswordRequest(EmailOtpRequest):
    new_password: str = Field(alias="newPassword")

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, value: str) -> str:
        if len(value) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        return value


def _find_user(db: Session, email: str) -> User:
    user = db.query(User).filter(User.email == email).first()
    if user is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User not found")
    return user


def _issue_otp(db: Session, user: User, mailer: Mailer, subject: str, purpose: str) -> None:
    otp, expires = generate_otp()
    user.otp = otp
    user.otp_expires = expires
    db.commit()

    try:
        mailer.send(
            user.email,
            subject,
            f"Your OTP for {purpose} is: {otp}. It is valid for {config.OTP_EXPIRES_MINUTES} minutes.",
        )
    except MailDeliveryError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send OTP email",
        ) from exc


def _clear_otp(user: User) -> None:
    user.otp = None
    user.otp_expires = None


@router.post("/signup", status_code=status.HTTP_201_CREATED)
def signup(data: SignupRequest, db: Session = Depends(get_db), mailer: Mailer = Depends(get_mailer)):
    if db.query(User).filter(User.email == data.email).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User already exists")

    user = User(
        name=data.name,
        email=data.email,
        hashed_password=hash_password(data.password),
        role=data.role,
        is_email_verified=False,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Created %s account %s", user.role, user.id)

    _issue_otp(db, user, mailer, "Email Verification OTP", "email verification")
    return {"message": "User created. Please verify your email with the OTP sent."}


@router.post("/verify-email")
def verify_email(data: EmailOtpRequest, db: Session = Depends(get_db)):
    user = _find_user(db, data.email)
    if user.is_email_verified:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email is already verified")
    if not otp_matches(user.otp, user.otp_expires, data.otp):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired OTP")

    user.is_email_verified = True
    _clear_otp(user)
    db.commit()
    return {"message": "Email verified successfully"}


@router.post("/resend-otp")
def resend_otp(data: EmailRequest, db: Session = Depends(get_db), mailer: Mailer = Depends(get_mailer)):
    user = _find_user(db, data.email)
    if user.is_email_verified:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email is already verified")

    _issue_otp(db, user, mailer, "Email Verification OTP", "email verification")
    return {"message": "A new OTP has been sent to your email"}


@router.post("/signin")
def signin(data: SigninRequest, db: Session = Depends(get_db), mailer: Mailer = Depends(get_mailer)):
    user = db.query(User).filter(User.email == data.email).first()
    if user is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid credentials")
    if not user.is_email_verified:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Please verify your email before signing in",
        )
    if not verify_password(data.password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid credentials")

    if not user.two_fa_enabled:
        token = jwt_handler.create_access_token(user.id, user.role)
        return {"token": token, "role": user.role, "message": "Signin successful"}

    _issue_otp(db, user, mailer, "2FA OTP for Sign In", "signing in")
    pending_token = jwt_handler.create_pending_token(user.id, user.email)
    return {"pendingToken": pending_token, "message": "OTP sent to your email"}


@router.post("/verify-otp")
def verify_otp(data: VerifyOtpRequest, db: Session = Depends(get_db)):
    try:
        claims = jwt_handler.decode_token(data.pending_token, jwt_handler.PENDING_TOKEN_TYPE)
    except Exception as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired session") from exc

    user = _find_user(db, data.email)
    if claims.get("sub") != str(user.id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired session")
    if not otp_matches(user.otp, user.otp_expires, data.otp):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired OTP")

    _clear_otp(user)
    db.commit()

    token = jwt_handler.create_access_token(user.id, user.role)
    logger.info("User %s completed two-factor signin", user.id)
    return {"token": token, "role": user.role, "message": "Signin successful"}


@router.post("/forgot-password")
def forgot_password(data: EmailRequest, db: Session = Depends(get_db), mailer: Mailer = Depends(get_mailer)):
    user = _find_user(db, data.email)
    _issue_otp(db, user, mailer, "Password Reset OTP", "password reset")
    return {"message": "OTP sent to your email"}


@router.post("/reset-password")
def reset_password(data: ResetPasswordRequest, db: Session = Depends(get_db)):
    user = _find_user(db, data.email)
    if not otp_matches(user.otp, user.otp_expires, data.otp):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired OTP")

    user.hashed_password = hash_password(data.new_password)
    _clear_otp(user)
    db.commit()
    logger.info("Password reset for user %s", user.id)
    return {"message": "Password reset successful"}


@router.get("/me")
def me(current_user: User = Depends(get_current_user)):
    return {"name": current_user.name, "email": current_user.email, "role": current_user.role}
