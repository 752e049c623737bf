"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional, Tuple

from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from core.env import env_bool
from core.guest.constants import SESSION_USER_KEY
from core.guest.settings import GuestSettings, load_guest_settings
from database import get_db
from models.site import Site
from models.user import User
from services.email_service import Mailer, SmtpMailer
from services.guest import (
    NoUsernameCapability,
    RequestContext,
    StoredUsernameCapability,
    UsernameCapability,
    authenticate_session_key,
)
from web.cors import CorsDecision, resolve_cors


@lru_cache(maxsize=1)
def get_guest_settings() -> GuestSettings:
    """Guest policy read once from the environment."""
    return load_guest_settings()


def get_mailer(settings: GuestSettings = Depends(get_guest_settings)) -> Mailer:
    return SmtpMailer(sender=settings.administrator_email, sender_name=settings.installation_title)


def get_username_capability() -> UsernameCapability:
    if env_bool("GUEST_USERNAMES", False):
        return StoredUsernameCapability()
    return NoUsernameCapability()


def get_cors(request: Request, settings: GuestSettings = Depends(get_guest_settings)) -> CorsDecision:
    return resolve_cors(request.headers.get("origin"), settings.cors_origins)


def _key_pair(request: Request) -> Tuple[Optional[str], Optional[str]]:
    """Key identity/credential from the query string or a ``Bearer identity:credential`` header."""

    identity = request.query_params.get("key_identity")
    credential = request.query_params.get("key_credential")
    if identity and credential:
        return identity, credential
    authorization = request.headers.get("authorization") or ""
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() == "bearer" and ":" in value:
        identity, _, credential = value.strip().partition(":")
        return identity or None, credential or None
    return None, None


def _session_user(request: Request, db: Session) -> Optional[User]:
    user_id = request.session.get(SESSION_USER_KEY)
    if user_id is None:
        return None
    try:
        user = db.get(User, int(user_id))
    except (TypeError, ValueError):
        user = None
    if user is None or not user.is_active:
        request.session.pop(SESSION_USER_KEY, None)
        return None
    return user


def _current_site(request: Request, db: Session) -> Optional[Site]:
    slug = request.query_params.get("site_slug")
    if not slug:
        return None
    return db.execute(select(Site).where(Site.slug == slug)).scalars().first()


def get_request_context(request: Request, db: Session = Depends(get_db)) -> RequestContext:
    """Build the caller context: an API key wins over the cookie session."""

    identity, credential = _key_pair(request)
    user = authenticate_session_key(db, identity, credential) if identity and credential else None
    if user is None:
        user = _session_user(request, db)
    return RequestContext(
        ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        user=user,
        site=_current_site(request, db),
    )


__all__ = [
    "get_cors",
    "get_guest_settings",
    "get_mailer",
    "get_request_context",
    "get_username_capability",
]
