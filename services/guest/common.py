"""Shared types and helpers for guest account workflows."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from email_validator import EmailNotValidError, validate_email
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from core.env import env_int
from core.guest.constants import JSendStatus
from core.guest.settings import GuestSettings
from models.site import Site
from models.user import User

logger = logging.getLogger(__name__)

_ARGON_TIME_COST = env_int("GUEST_ARGON2_TIME_COST", 2, minimum=1)
_ARGON_MEMORY_COST = env_int("GUEST_ARGON2_MEMORY_COST", 65536, minimum=8192)
_ARGON_PARALLELISM = env_int("GUEST_ARGON2_PARALLELISM", 1, minimum=1)

_PASSWORD_HASHER = PasswordHasher(
    time_cost=_ARGON_TIME_COST,
    memory_cost=_ARGON_MEMORY_COST,
    parallelism=_ARGON_PARALLELISM,
)


@dataclass(frozen=True)
class RequestContext:
    """Request-scoped identity and client details handed to every workflow."""

    ip: Optional[str] = None
    user_agent: Optional[str] = None
    user: Optional[User] = None
    site: Optional[Site] = None

    @property
    def is_logged(self) -> bool:
        return self.user is not None


class GuestServiceError(RuntimeError):
    """Workflow failure carrying the JSend status and the field it concerns."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 400,
        *,
        field: str = "user",
        status: JSendStatus = "fail",
    ):
        super().__init__(message)
        self.code = code
        self.status_code = status_code
        self.field = field
        self.status = status

    @classmethod
    def internal(cls, code: str, message: str) -> "GuestServiceError":
        return cls(code, message, 500, status="error")


@dataclass(frozen=True)
class RegisterResult:
    user: User
    token: Optional[str]
    message: str


@dataclass(frozen=True)
class ConfirmationResult:
    user: User
    email: str
    message: str


@dataclass(frozen=True)
class SessionKey:
    identity: str
    credential: str
    user_id: int


@dataclass(frozen=True)
class PasswordResetRequestResult:
    email: str
    expires_at: datetime


@dataclass(frozen=True)
class UpdateResult:
    user: User
    message: Optional[str] = None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def is_valid_email(email: Optional[str]) -> bool:
    if not email:
        return False
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def require_email(email: Optional[str], *, field: str = "email") -> str:
    """Presence then syntax check; returns the normalized address."""
    if email is None or not str(email).strip():
        raise GuestServiceError("guest.email_required", "Email is required.", field=field)
    if not is_valid_email(str(email).strip()):
        raise GuestServiceError("guest.email_invalid", "Invalid email.", field=field)
    return normalize_email(email)


def check_password_length(password: str, settings: GuestSettings, *, field: str) -> None:
    if len(password) < settings.password_min_length:
        raise GuestServiceError(
            "guest.password_weak",
            f"New password should have {settings.password_min_length} characters or more.",
            field=field,
        )


def hash_password(password: str) -> str:
    return _PASSWORD_HASHER.hash(password)


def verify_password(password_hash: Optional[str], password: Optional[str]) -> bool:
    if not password_hash or not password:
        return False
    try:
        return _PASSWORD_HASHER.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False


def security_delay(settings: GuestSettings) -> None:
    """Slow down answers that could otherwise be brute-forced."""
    if settings.security_delay_seconds > 0:
        time.sleep(settings.security_delay_seconds)


def find_user_by_email(session: Session, email: str, *, active_only: bool = False) -> Optional[User]:
    statement = select(User).where(func.lower(User.email) == normalize_email(email))
    if active_only:
        statement = statement.where(User.is_active.is_(True))
    return session.execute(statement).scalars().first()


def user_representation(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "isActive": bool(user.is_active),
        "created": as_utc(user.created_at).isoformat() if user.created_at else None,
    }


__all__ = [
    "ConfirmationResult",
    "GuestServiceError",
    "PasswordResetRequestResult",
    "RegisterResult",
    "RequestContext",
    "SessionKey",
    "UpdateResult",
    "as_utc",
    "check_password_length",
    "find_user_by_email",
    "hash_password",
    "is_valid_email",
    "normalize_email",
    "require_email",
    "security_delay",
    "user_representation",
    "utcnow",
    "verify_password",
]
