"""Self-service guest registration."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.guest.constants import GUEST_SITE_SETTING, ROLE_GUEST, SITE_ROLE_VIEWER
from core.guest.settings import GuestSettings
from core.logging import get_logger
from models.site import Site, SitePermission
from models.user import User
from models.user_setting import UserSetting
from services.email_service import Mailer, compose_confirm_email, compose_register_notification

from .capabilities import NoUsernameCapability, UsernameCapability
from .common import (
    GuestServiceError,
    RegisterResult,
    RequestContext,
    check_password_length,
    find_user_by_email,
    hash_password,
    require_email,
)
from .token_store import issue_token, latest_token_for_email

logger = get_logger(__name__)

MESSAGE_REGISTERED_VALID = "Thank you for registering. You can now log in and use the library."
MESSAGE_REGISTERED_OPEN = (
    "Thank you for registering. Please check your email for a confirmation message. "
    "Once you have confirmed your request, you will be able to log in."
)
MESSAGE_REGISTERED_MODERATE = (
    "Thank you for registering. Please check your email for a confirmation message. "
    "Once you have confirmed your request, a moderator will confirm registration."
)


class RegisterGuestUseCase:
    """Creates a pending guest account and sends its confirmation email.

    Resubmissions for a known email never create a second account: the latest
    confirmation token of the email decides between "Already registered." and
    "Check your email to confirm your registration.".
    """

    def __init__(
        self,
        session: Session,
        payload: Dict[str, Any],
        *,
        context: RequestContext,
        settings: GuestSettings,
        mailer: Mailer,
        usernames: Optional[UsernameCapability] = None,
    ):
        self.session = session
        self.payload = payload
        self.context = context
        self.settings = settings
        self.mailer = mailer
        self.usernames = usernames or NoUsernameCapability()
        self.email = ""
        self.username: Optional[str] = None
        self.site: Optional[Site] = None

    def execute(self) -> RegisterResult:
        self._check_access()
        self.email = require_email(self.payload.get("email"))
        self.site = self._resolve_site()
        self._check_existing_registration()
        if self.usernames.enabled:
            self.username = self.usernames.validate(self.session, self.payload.get("username"))
        password = self.payload.get("password") or None
        if password is not None:
            check_password_length(password, self.settings, field="password")

        user = self._create_user()
        self._finalize_user(user, password)
        self._grant_sites(user)
        self._store_settings(user)
        self._notify_administrators(user)

        token_value: Optional[str] = None
        if not self.settings.email_is_valid:
            token_value = issue_token(self.session, email=user.email, user=user).token
        self._send_confirmation(user, token_value)
        logger.info("Guest user %s registered (policy=%s).", user.id, self.settings.registration)
        return RegisterResult(user=user, token=token_value, message=self._success_message())

    def _check_access(self) -> None:
        if self.settings.is_closed:
            raise GuestServiceError("guest.registration_closed", "Access forbidden.", 403)
        if self.context.is_logged:
            raise GuestServiceError("guest.already_logged", "User cannot register: already logged.")

    def _resolve_site(self) -> Optional[Site]:
        if not self.settings.register_site:
            return self.context.site
        raw = self.payload.get("site")
        if raw is None or str(raw).strip() == "":
            raise GuestServiceError("guest.site_required", "A site is required to register.", field="site")
        value = str(raw).strip()
        if value.isdigit():
            site = self.session.get(Site, int(value))
        else:
            site = self.session.execute(select(Site).where(Site.slug == value)).scalars().first()
        if site is None:
            raise GuestServiceError("guest.site_unknown", "The site doesn't exist.", field="site")
        return site

    def _check_existing_registration(self) -> None:
        existing = find_user_by_email(self.session, self.email)
        if existing is None:
            return
        latest = latest_token_for_email(self.session, self.email)
        if latest is None or latest.confirmed:
            raise GuestServiceError("guest.already_registered", "Already registered.")
        if self.settings.email_is_valid:
            # The policy changed since the first submission: the pending token is settled here.
            latest.confirmed = True
            self.session.commit()
            logger.info("Pending token %s of user %s confirmed on resubmission.", latest.id, existing.id)
            raise GuestServiceError("guest.already_registered", "Already registered.")
        raise GuestServiceError("guest.pending_confirmation", "Check your email to confirm your registration.")

    def _display_name(self) -> str:
        name = (self.payload.get("name") or "").strip()
        return name or (self.payload.get("username") or "").strip() or self.email

    def _create_user(self) -> User:
        try:
            user = User(email=self.email, name=self._display_name(), role=ROLE_GUEST, is_active=False)
            self.session.add(user)
            self.session.commit()
            if self.username:
                self.usernames.attach(self.session, user, self.username)
        except SQLAlchemyError:
            logger.exception("An error occurred during creation of the guest user %s.", self.email)
            self.session.rollback()
            user = find_user_by_email(self.session, self.email)
            if user is None:
                raise GuestServiceError.internal("guest.create_failed", "Unknown error during creation of user.")
        return user

    def _finalize_user(self, user: User, password: Optional[str]) -> None:
        if password is not None:
            user.password_hash = hash_password(password)
        user.role = ROLE_GUEST
        user.is_active = self.settings.is_open
        self.session.commit()

    def _site_ids(self) -> List[int]:
        ids: List[int] = []
        if self.site is not None:
            ids.append(self.site.id)
        for site_id in self.settings.default_sites:
            if site_id not in ids:
                ids.append(site_id)
        return ids

    def _grant_sites(self, user: User) -> None:
        for site_id in self._site_ids():
            if self.session.get(Site, site_id) is None:
                logger.warning("Default site %s does not exist; skipped for user %s.", site_id, user.id)
                continue
            existing = self.session.execute(
                select(SitePermission).where(SitePermission.site_id == site_id, SitePermission.user_id == user.id)
            ).scalars().first()
            if existing is None:
                self.session.add(SitePermission(site_id=site_id, user_id=user.id, role=SITE_ROLE_VIEWER))
        self.session.commit()

    def _store_settings(self, user: User) -> None:
        values = dict(self.payload.get("settings") or {})
        if self.site is not None:
            values[GUEST_SITE_SETTING] = self.site.id
        for key, value in values.items():
            _set_user_setting(self.session, user.id, str(key), value)
        self.session.commit()

    def _notify_administrators(self, user: User) -> None:
        recipients = list(self.settings.notify_register)
        if not recipients:
            return
        content = compose_register_notification(settings=self.settings, user=user, site=self.site)
        if not self.mailer.send(recipients, content.subject, content.body):
            logger.error("An error occurred when the registration notification was sent for user %s.", user.id)
            raise GuestServiceError.internal(
                "guest.notify_failed", "An error occurred when the notification email was sent."
            )

    def _send_confirmation(self, user: User, token_value: Optional[str]) -> None:
        content = compose_confirm_email(settings=self.settings, user=user, token=token_value, site=self.site)
        if not self.mailer.send([user.email], content.subject, content.body, name=user.name):
            logger.error("An error occurred when the confirmation email was sent to user %s.", user.id)
            raise GuestServiceError.internal("guest.email_failed", "An error occurred when the email was sent.")

    def _success_message(self) -> str:
        if self.settings.email_is_valid:
            return self.settings.message_confirm_register or MESSAGE_REGISTERED_VALID
        if self.settings.is_open:
            return self.settings.message_confirm_register or MESSAGE_REGISTERED_OPEN
        return self.settings.message_confirm_register_moderate or MESSAGE_REGISTERED_MODERATE


def _set_user_setting(session: Session, user_id: int, key: str, value: Any) -> None:
    record = session.execute(
        select(UserSetting).where(UserSetting.user_id == user_id, UserSetting.key == key)
    ).scalars().first()
    if record is None:
        session.add(UserSetting(user_id=user_id, key=key, value=value))
    else:
        record.value = value


def register_guest(
    session: Session,
    payload: Dict[str, Any],
    *,
    context: RequestContext,
    settings: GuestSettings,
    mailer: Mailer,
    usernames: Optional[UsernameCapability] = None,
) -> RegisterResult:
    return RegisterGuestUseCase(
        session,
        payload,
        context=context,
        settings=settings,
        mailer=mailer,
        usernames=usernames,
    ).execute()


def user_site_ids(session: Session, user: User) -> Iterable[int]:
    return session.execute(select(SitePermission.site_id).where(SitePermission.user_id == user.id)).scalars().all()


__all__ = [
    "MESSAGE_REGISTERED_MODERATE",
    "MESSAGE_REGISTERED_OPEN",
    "MESSAGE_REGISTERED_VALID",
    "RegisterGuestUseCase",
    "register_guest",
    "user_site_ids",
]
