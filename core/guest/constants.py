"""Centralized constants for guest account flows."""

from __future__ import annotations

from typing import FrozenSet, Literal

RegistrationPolicy = Literal["open", "moderate", "closed"]
JSendStatus = Literal["success", "fail", "error"]

REGISTRATION_POLICIES: FrozenSet[RegistrationPolicy] = frozenset(["open", "moderate", "closed"])
DEFAULT_REGISTRATION_POLICY: RegistrationPolicy = "moderate"

ROLE_GUEST = "guest"
SITE_ROLE_VIEWER = "viewer"
GUEST_SESSION_LABEL = "guest_session"
GUEST_SITE_SETTING = "guest_site"
SESSION_USER_KEY = "guest_user_id"

__all__ = [
    "DEFAULT_REGISTRATION_POLICY",
    "GUEST_SESSION_LABEL",
    "GUEST_SITE_SETTING",
    "JSendStatus",
    "REGISTRATION_POLICIES",
    "ROLE_GUEST",
    "RegistrationPolicy",
    "SESSION_USER_KEY",
    "SITE_ROLE_VIEWER",
]
