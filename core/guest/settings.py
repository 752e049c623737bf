"""Guest registration policy loaded from the environment."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from core.env import env_bool, env_float, env_int, env_list, env_str
from core.logging import get_logger

from .constants import DEFAULT_REGISTRATION_POLICY, REGISTRATION_POLICIES, ROLE_GUEST, RegistrationPolicy

logger = get_logger(__name__)


@dataclass(frozen=True)
class GuestSettings:
    """Operator policy for guest accounts, passed explicitly into every workflow."""

    registration: RegistrationPolicy = DEFAULT_REGISTRATION_POLICY
    email_is_valid: bool = False
    register_site: bool = False
    default_sites: Tuple[int, ...] = ()
    notify_register: Tuple[str, ...] = ()
    cors_origins: Tuple[str, ...] = ("*",)
    login_roles: Tuple[str, ...] = (ROLE_GUEST,)
    login_session: bool = True
    installation_title: str = "Guest library"
    administrator_email: Optional[str] = None
    frontend_base_url: str = "http://localhost:8000"
    message_confirm_register: Optional[str] = None
    message_confirm_register_moderate: Optional[str] = None
    message_confirm_email: Optional[str] = None
    password_min_length: int = 6
    reset_code_length: int = 8
    reset_code_ttl_seconds: int = 60 * 60
    reset_code_max_attempts: int = 10
    security_delay_seconds: float = 1.0

    @property
    def is_open(self) -> bool:
        return self.registration == "open"

    @property
    def is_closed(self) -> bool:
        return self.registration == "closed"


def _policy(raw: Optional[str]) -> RegistrationPolicy:
    value = (raw or DEFAULT_REGISTRATION_POLICY).strip().lower()
    if value not in REGISTRATION_POLICIES:
        logger.warning("Unknown GUEST_REGISTRATION value '%s'. Using %s.", raw, DEFAULT_REGISTRATION_POLICY)
        return DEFAULT_REGISTRATION_POLICY
    return value  # type: ignore[return-value]


def _site_ids(values) -> Tuple[int, ...]:
    ids = []
    for value in values:
        try:
            ids.append(int(value))
        except ValueError:
            logger.warning("Ignoring non-numeric default site id '%s'.", value)
    return tuple(ids)


def load_guest_settings() -> GuestSettings:
    """Build settings from GUEST_* environment variables."""

    return GuestSettings(
        registration=_policy(env_str("GUEST_REGISTRATION")),
        email_is_valid=env_bool("GUEST_REGISTER_EMAIL_IS_VALID", False),
        register_site=env_bool("GUEST_REGISTER_SITE", False),
        default_sites=_site_ids(env_list("GUEST_DEFAULT_SITES")),
        notify_register=tuple(env_list("GUEST_NOTIFY_REGISTER")),
        cors_origins=tuple(env_list("GUEST_CORS", ["*"])) or ("*",),
        login_roles=tuple(env_list("GUEST_LOGIN_ROLES", [ROLE_GUEST])),
        login_session=env_bool("GUEST_LOGIN_SESSION", True),
        installation_title=env_str("INSTALLATION_TITLE") or "Guest library",
        administrator_email=env_str("ADMINISTRATOR_EMAIL"),
        frontend_base_url=env_str("GUEST_FRONTEND_BASE_URL") or "http://localhost:8000",
        message_confirm_register=env_str("GUEST_MESSAGE_CONFIRM_REGISTER"),
        message_confirm_register_moderate=env_str("GUEST_MESSAGE_CONFIRM_REGISTER_MODERATE"),
        message_confirm_email=env_str("GUEST_MESSAGE_CONFIRM_EMAIL"),
        password_min_length=env_int("GUEST_PASSWORD_MIN_LENGTH", 6, minimum=1),
        reset_code_length=env_int("GUEST_RESET_CODE_LENGTH", 8, minimum=4),
        reset_code_ttl_seconds=env_int("GUEST_RESET_CODE_TTL_SECONDS", 60 * 60, minimum=60),
        reset_code_max_attempts=env_int("GUEST_RESET_CODE_MAX_ATTEMPTS", 10, minimum=1),
        security_delay_seconds=env_float("GUEST_SECURITY_DELAY_SECONDS", 1.0, minimum=0.0),
    )


__all__ = ["GuestSettings", "load_guest_settings"]
