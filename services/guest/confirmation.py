"""Redemption of confirmation tokens sent by email."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from core.guest.settings import GuestSettings
from core.logging import get_logger
from models.site import Site
from models.user import User

from .common import ConfirmationResult, GuestServiceError, security_delay
from .token_store import find_token, redeem_token

logger = get_logger(__name__)


def _site_title(settings: GuestSettings, site: Optional[Site]) -> str:
    return site.title if site is not None else settings.installation_title


def _load_owner(session: Session, user_id: int) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise GuestServiceError.internal("guest.token_orphan", "The user of this token no longer exists.")
    return user


def confirm_registration(
    session: Session,
    *,
    token: Optional[str],
    settings: GuestSettings,
    site: Optional[Site] = None,
) -> ConfirmationResult:
    """Redeem a registration token; the account becomes active only under open registration."""

    redeemed = redeem_token(session, token)
    user = _load_owner(session, redeemed.user_id)
    user.is_active = settings.is_open
    session.commit()

    site_title = _site_title(settings, site)
    if settings.is_open:
        message = f"Thanks for joining {site_title}! You can now log in using the password you chose."
    else:
        message = f"Thanks for joining {site_title}! Your registration is under moderation. See you soon!"
    logger.info("Registration of user %s confirmed (active=%s).", user.id, user.is_active)
    return ConfirmationResult(user=user, email=redeemed.email, message=message)


def confirm_email(
    session: Session,
    *,
    token: Optional[str],
    settings: GuestSettings,
    is_update: bool,
    site: Optional[Site] = None,
) -> ConfirmationResult:
    """Redeem an email token and write its address on the owner account.

    ``is_update`` distinguishes the change of an existing email from the first
    confirmation of a new account; only the returned message differs.
    """

    site_title = _site_title(settings, site)
    not_found = f"Invalid token: your email was not confirmed for {site_title}."

    record = find_token(session, token)
    if record is not None and not record.confirmed:
        owner = session.execute(
            select(User).where(func.lower(User.email) == record.email, User.id != record.user_id)
        ).scalars().first()
        if owner is not None:
            security_delay(settings)
            logger.warning(
                "User #%s cannot confirm email %s: already used by user #%s.", record.user_id, record.email, owner.id
            )
            raise GuestServiceError("guest.email_taken", f'The email "{record.email}" is not yours.', field="email")

    redeemed = redeem_token(session, token, not_found_message=not_found)
    user = _load_owner(session, redeemed.user_id)
    user.email = redeemed.email
    session.commit()

    if is_update:
        message = f'Your email "{redeemed.email}" is confirmed for {site_title}.'
    else:
        template = settings.message_confirm_email or 'Your email "{user_email}" is confirmed for {site_title}.'
        message = template.replace("{user_email}", redeemed.email).replace("{site_title}", site_title)
    return ConfirmationResult(user=user, email=redeemed.email, message=message)


__all__ = ["confirm_email", "confirm_registration"]
