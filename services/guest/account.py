"""Login, logout and self-service profile updates for guest accounts."""

from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from core.guest.settings import GuestSettings
from core.logging import get_logger
from models.site import Site
from models.user import User
from services.email_service import Mailer, compose_update_email

from .common import (
    GuestServiceError,
    RequestContext,
    UpdateResult,
    check_password_length,
    find_user_by_email,
    hash_password,
    is_valid_email,
    normalize_email,
    require_email,
    security_delay,
    verify_password,
)
from .registration import user_site_ids
from .session_keys import revoke_session_keys
from .token_store import issue_token, latest_token_for_email

logger = get_logger(__name__)

_PATCHABLE_FIELDS = frozenset(["name"])


def login(
    session: Session,
    *,
    email: Optional[str],
    password: Optional[str],
    settings: GuestSettings,
    context: RequestContext,
) -> User:
    """Check credentials and account state; the caller opens the session."""

    if context.is_logged:
        raise GuestServiceError("guest.already_logged", "User cannot login: already logged.")
    normalized = require_email(email)
    if not password:
        raise GuestServiceError("guest.password_required", "Password is required.", field="password")

    user = find_user_by_email(session, normalized)
    if user is None or not verify_password(user.password_hash, password):
        security_delay(settings)
        raise GuestServiceError("guest.credentials_invalid", "Wrong email or password.")

    if not user.is_active:
        latest = latest_token_for_email(session, user.email)
        if latest is not None and not latest.confirmed:
            raise GuestServiceError("guest.pending_confirmation", "Check your email to confirm your registration.")
        if not settings.is_open:
            raise GuestServiceError("guest.under_moderation", "Your account is under moderation for opening.")
        raise GuestServiceError("guest.credentials_invalid", "Wrong email or password.")

    if user.role not in settings.login_roles:
        raise GuestServiceError("guest.role_forbidden", f'Role "{user.role}" is not allowed to login via api.')

    logger.info("User %s logged in from %s.", user.id, context.ip or "unknown")
    return user


def logout(session: Session, *, context: RequestContext) -> User:
    """Revoke the session keys of the current user; the caller clears the cookie."""

    if context.user is None:
        raise GuestServiceError("guest.not_logged", "User not logged.")
    revoke_session_keys(session, context.user)
    return context.user


def change_password(session: Session, user: User, data: Dict[str, Any], *, settings: GuestSettings) -> UpdateResult:
    if len(data) > 2:
        raise GuestServiceError(
            "guest.password_mixed",
            "You cannot update password and another data in the same time.",
            field="password",
        )
    current = data.get("password")
    new_password = data.get("new_password")
    if not current:
        raise GuestServiceError("guest.password_missing", "Existing password empty.", field="password")
    if not new_password:
        raise GuestServiceError("guest.new_password_missing", "New password empty.", field="password")
    check_password_length(new_password, settings, field="password")
    if not verify_password(user.password_hash, current):
        security_delay(settings)
        raise GuestServiceError("guest.password_wrong", "Wrong password.", field="password")

    user.password_hash = hash_password(new_password)
    session.commit()
    return UpdateResult(user=user, message="Password successfully changed")


def request_email_change(
    session: Session,
    user: User,
    data: Dict[str, Any],
    *,
    settings: GuestSettings,
    mailer: Mailer,
    site: Optional[Site] = None,
) -> UpdateResult:
    """Send a confirmation link to the new address; the email changes once it is followed."""

    if len(data) > 1:
        raise GuestServiceError(
            "guest.email_mixed", "You cannot update email and another data in the same time.", field="email"
        )
    raw = str(data.get("email") or "").strip()
    if not raw:
        raise GuestServiceError("guest.email_missing", "New email empty.", field="email")
    if not is_valid_email(raw):
        raise GuestServiceError("guest.email_invalid", f'"{raw}" is not an email.', field="email")
    email = normalize_email(raw)
    if email == normalize_email(user.email):
        raise GuestServiceError("guest.email_same", "The new email is the same than the current one.", field="email")

    owner = find_user_by_email(session, email)
    if owner is not None:
        security_delay(settings)
        logger.warning(
            'User #%s wants to change email from "%s" to "%s", used by user #%s.',
            user.id,
            user.email,
            email,
            owner.id,
        )
        raise GuestServiceError("guest.email_taken", f'The email "{email}" is not yours.', field="email")

    token = issue_token(session, email=email, user=user)
    content = compose_update_email(settings=settings, user=user, email=email, token=token.token, site=site)
    if not mailer.send([email], content.subject, content.body, name=user.name):
        logger.error("An error occurred when the email change link was sent to user %s.", user.id)
        raise GuestServiceError.internal("guest.email_failed", "An error occurred when the email was sent.")
    return UpdateResult(user=user, message=f'Check your email "{email}" to confirm the change.')


def update_me(
    session: Session,
    user: User,
    data: Dict[str, Any],
    *,
    settings: GuestSettings,
    mailer: Mailer,
    context: RequestContext,
) -> UpdateResult:
    """Partial update of the current account: password, email or display name."""

    data = {key: value for key, value in data.items() if value is not None}
    if not data or not any(data.values()):
        raise GuestServiceError("guest.request_empty", "Request is empty.")

    if "password" in data or "new_password" in data:
        return change_password(session, user, data, settings=settings)

    if "email" in data:
        site = context.site
        if settings.register_site:
            site_ids = list(user_site_ids(session, user))
            if not site_ids:
                raise GuestServiceError(
                    "guest.email_no_site",
                    "Email cannot be updated: the user is not related to a site.",
                    field="email",
                )
            site = session.get(Site, site_ids[0])
        return request_email_change(session, user, data, settings=settings, mailer=mailer, site=site)

    if set(data) - _PATCHABLE_FIELDS:
        raise GuestServiceError("guest.fields_forbidden", "Your request contains metadata that cannot be updated.")

    name = str(data.get("name") or "").strip()
    if not name:
        raise GuestServiceError("guest.name_empty", "The new name is empty.", field="name")
    user.name = name
    session.commit()
    return UpdateResult(user=user)


__all__ = ["change_password", "login", "logout", "request_email_change", "update_me"]
