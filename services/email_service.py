"""Transactional email helpers for guest flows."""

from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from datetime import datetime
from email.message import EmailMessage
from email.utils import formataddr
from pathlib import Path
from typing import Dict, Optional, Protocol, Sequence

from jinja2 import Environment, FileSystemLoader, TemplateNotFound, select_autoescape

from core.env import env_bool, env_int, env_str
from core.guest.settings import GuestSettings
from models.site import Site
from models.user import User

logger = logging.getLogger(__name__)

REPO_ROOT = Path(__file__).resolve().parent.parent
EMAIL_TEMPLATE_DIR = REPO_ROOT / "templates" / "email"

_ENV: Optional[Environment] = None

SMTP_HOST = env_str("SMTP_HOST")
SMTP_PORT = env_int("SMTP_PORT", 587, minimum=1)
SMTP_USERNAME = env_str("SMTP_USERNAME")
SMTP_PASSWORD = env_str("SMTP_PASSWORD")
SMTP_USE_TLS = env_bool("SMTP_USE_TLS", True)
SMTP_FROM = env_str("SMTP_FROM")


@dataclass(frozen=True)
class EmailContent:
    subject: str
    body: str


class Mailer(Protocol):
    """Sends a plain-text message and reports whether it was accepted."""

    def send(self, recipients: Sequence[str], subject: str, body: str, *, name: Optional[str] = None) -> bool:
        ...


class SmtpMailer:
    def __init__(self, *, sender: Optional[str] = None, sender_name: Optional[str] = None):
        self.sender = sender
        self.sender_name = sender_name

    def _from_header(self) -> Optional[str]:
        address = SMTP_FROM or self.sender
        if not address:
            return None
        return formataddr((self.sender_name, address)) if self.sender_name else address

    def send(self, recipients: Sequence[str], subject: str, body: str, *, name: Optional[str] = None) -> bool:
        targets = [item.strip() for item in recipients if item and item.strip()]
        if not targets:
            logger.error("Email '%s' has no recipient.", subject)
            return False
        if not SMTP_HOST:
            logger.error("SMTP_HOST is not configured; email '%s' to %s not sent.", subject, ", ".join(targets))
            return False
        sender = self._from_header()
        if not sender:
            logger.error("No sender address configured (SMTP_FROM or ADMINISTRATOR_EMAIL).")
            return False

        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = sender
        if name and len(targets) == 1:
            message["To"] = formataddr((name, targets[0]))
        else:
            message["To"] = ", ".join(targets)
        message.set_content(body)

        try:
            with smtplib.SMTP(SMTP_HOST, SMTP_PORT) as client:
                if SMTP_USE_TLS:
                    client.starttls()
                if SMTP_USERNAME and SMTP_PASSWORD:
                    client.login(SMTP_USERNAME, SMTP_PASSWORD)
                client.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send email '%s' to %s: %s", subject, ", ".join(targets), exc)
            return False
        return True


def _get_env() -> Environment:
    global _ENV  # pylint: disable=global-statement
    if _ENV is None:
        _ENV = Environment(
            loader=FileSystemLoader(EMAIL_TEMPLATE_DIR),
            autoescape=select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )
    return _ENV


def _render_template(template: str, context: Dict[str, object]) -> str:
    env = _get_env()
    try:
        return env.get_template(template).render(**context)
    except TemplateNotFound:
        logger.error("Email template %s not found.", template)
        return ""


def _frontend_url(settings: GuestSettings, path: str) -> str:
    base = settings.frontend_base_url.rstrip("/")
    fragment = path.lstrip("/")
    return f"{base}/{fragment}"


def _site_title(settings: GuestSettings, site: Optional[Site]) -> str:
    return site.title if site is not None else settings.installation_title


def compose_confirm_email(
    *,
    settings: GuestSettings,
    user: User,
    token: Optional[str],
    site: Optional[Site] = None,
) -> EmailContent:
    """Registration message; without a token it only welcomes the user."""

    site_title = _site_title(settings, site)
    context = {
        "site_title": site_title,
        "user_name": user.name,
        "user_email": user.email,
        "confirm_url": _frontend_url(settings, f"api/guest/confirm?token={token}") if token else None,
    }
    body = _render_template("confirm_email.txt.jinja", context)
    return EmailContent(subject=f"Your request to join {site_title}", body=body)


def compose_update_email(
    *,
    settings: GuestSettings,
    user: User,
    email: str,
    token: str,
    site: Optional[Site] = None,
) -> EmailContent:
    site_title = _site_title(settings, site)
    context = {
        "site_title": site_title,
        "user_name": user.name,
        "user_email": email,
        "confirm_url": _frontend_url(settings, f"api/guest/validate-email?token={token}"),
    }
    body = _render_template("update_email.txt.jinja", context)
    return EmailContent(subject=f"[{site_title}] Confirm your new email", body=body)


def compose_password_reset_code(
    *,
    settings: GuestSettings,
    user: User,
    code: str,
    expires_at: datetime,
) -> EmailContent:
    context = {
        "site_title": settings.installation_title,
        "user_name": user.name,
        "token": code,
        "date": expires_at.strftime("%Y-%m-%d %H:%M:%S %Z").strip(),
    }
    body = _render_template("password_reset_code.txt.jinja", context)
    return EmailContent(subject=f"User token for {settings.installation_title}", body=body)


def compose_register_notification(*, settings: GuestSettings, user: User, site: Optional[Site] = None) -> EmailContent:
    context = {
        "site_title": _site_title(settings, site),
        "user_email": user.email,
        "user_id": user.id,
    }
    body = _render_template("register_notify.txt.jinja", context)
    return EmailContent(subject=f"[{settings.installation_title}] New registration", body=body)


__all__ = [
    "EmailContent",
    "Mailer",
    "SmtpMailer",
    "compose_confirm_email",
    "compose_password_reset_code",
    "compose_register_notification",
    "compose_update_email",
]
