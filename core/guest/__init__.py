"""Guest-account shared utilities."""

from .constants import (
    DEFAULT_REGISTRATION_POLICY,
    GUEST_SESSION_LABEL,
    REGISTRATION_POLICIES,
    ROLE_GUEST,
    RegistrationPolicy,
)
from .settings import GuestSettings, load_guest_settings

__all__ = [
    "DEFAULT_REGISTRATION_POLICY",
    "GUEST_SESSION_LABEL",
    "GuestSettings",
    "REGISTRATION_POLICIES",
    "ROLE_GUEST",
    "RegistrationPolicy",
    "load_guest_settings",
]
