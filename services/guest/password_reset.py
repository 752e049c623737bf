"""Password reset by short numeric code sent by email."""

from __future__ import annotations

import secrets
import string
from datetime import timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.guest.settings import GuestSettings
from core.logging import get_logger
from models.password_reset_code import PasswordResetCode
from models.user import User
from services.email_service import Mailer, compose_password_reset_code

from .common import (
    GuestServiceError,
    PasswordResetRequestResult,
    RequestContext,
    as_utc,
    check_password_length,
    find_user_by_email,
    hash_password,
    require_email,
    security_delay,
    utcnow,
)

logger = get_logger(__name__)


def _load_account(session: Session, email: Optional[str], context: RequestContext) -> User:
    if context.is_logged:
        raise GuestServiceError(
            "guest.reset_logged", "A logged user cannot change the password with this method."
        )
    normalized = require_email(email)
    user = find_user_by_email(session, normalized)
    if user is None:
        raise GuestServiceError("guest.email_unknown", "Invalid email.", field="email")
    if not user.is_active:
        raise GuestServiceError("guest.user_inactive", "User is not active and cannot update password.")
    return user


def _generate_code(session: Session, settings: GuestSettings) -> str:
    for _ in range(settings.reset_code_max_attempts):
        candidate = "".join(secrets.choice(string.digits) for _ in range(settings.reset_code_length))
        if session.get(PasswordResetCode, candidate) is None:
            return candidate
    logger.error("No free password reset code after %d attempts.", settings.reset_code_max_attempts)
    raise GuestServiceError.internal("guest.reset_code_exhausted", "Unable to create a password token.")


def request_password_reset(
    session: Session,
    *,
    email: Optional[str],
    mailer: Mailer,
    settings: GuestSettings,
    context: RequestContext,
    activate: bool = False,
) -> PasswordResetRequestResult:
    """Replace any pending code of the account and email a new one."""

    user = _load_account(session, email, context)

    previous = session.execute(select(PasswordResetCode).where(PasswordResetCode.user_id == user.id)).scalars().all()
    for record in previous:
        session.delete(record)
    session.commit()

    code = _generate_code(session, settings)
    created_at = utcnow()
    session.add(PasswordResetCode(id=code, user_id=user.id, activate=activate, created_at=created_at))
    session.commit()

    expires_at = created_at + timedelta(seconds=settings.reset_code_ttl_seconds)
    content = compose_password_reset_code(settings=settings, user=user, code=code, expires_at=expires_at)
    if not mailer.send([user.email], content.subject, content.body, name=user.name):
        logger.error("An error occurred when the password token was sent to user %s.", user.id)
        raise GuestServiceError.internal("guest.email_failed", "An error occurred when the email was sent.")
    logger.info("Password reset code issued for user %s.", user.id)
    return PasswordResetRequestResult(email=user.email, expires_at=expires_at)


def confirm_password_reset(
    session: Session,
    *,
    email: Optional[str],
    code: Optional[str],
    password: Optional[str],
    settings: GuestSettings,
    context: RequestContext,
) -> User:
    """Redeem a reset code: an expired code is removed even though the request fails."""

    user = _load_account(session, email, context)

    record = session.get(PasswordResetCode, str(code)) if code else None
    if record is None or record.user_id != user.id:
        security_delay(settings)
        raise GuestServiceError("guest.reset_code_invalid", "Invalid token.", field="email")

    expires_at = as_utc(record.created_at) + timedelta(seconds=settings.reset_code_ttl_seconds)
    if utcnow() > expires_at:
        session.delete(record)
        session.commit()
        raise GuestServiceError("guest.reset_code_expired", "Password token expired.", field="token")

    if not password:
        raise GuestServiceError("guest.password_required", "Password is required.", field="token")
    check_password_length(password, settings, field="token")

    user.password_hash = hash_password(password)
    if record.activate:
        user.is_active = True
    session.delete(record)
    session.commit()
    logger.info("Password of user %s reset with a code.", user.id)
    return user


__all__ = ["confirm_password_reset", "request_password_reset"]
