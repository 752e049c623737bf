"""Guest account service submodule exports."""

from __future__ import annotations

from .account import change_password, login, logout, request_email_change, update_me
from .capabilities import NoUsernameCapability, StoredUsernameCapability, UsernameCapability
from .common import (
    ConfirmationResult,
    GuestServiceError,
    PasswordResetRequestResult,
    RegisterResult,
    RequestContext,
    SessionKey,
    UpdateResult,
    user_representation,
)
from .confirmation import confirm_email, confirm_registration
from .password_reset import confirm_password_reset, request_password_reset
from .registration import RegisterGuestUseCase, register_guest
from .session_keys import authenticate_session_key, issue_session_key, revoke_session_keys
from .token_store import RedeemedToken, confirm_all_for_email, issue_token, latest_token_for_email, redeem_token

__all__ = [
    "ConfirmationResult",
    "GuestServiceError",
    "NoUsernameCapability",
    "PasswordResetRequestResult",
    "RedeemedToken",
    "RegisterGuestUseCase",
    "RegisterResult",
    "RequestContext",
    "SessionKey",
    "StoredUsernameCapability",
    "UpdateResult",
    "UsernameCapability",
    "authenticate_session_key",
    "change_password",
    "confirm_all_for_email",
    "confirm_email",
    "confirm_password_reset",
    "confirm_registration",
    "issue_session_key",
    "issue_token",
    "latest_token_for_email",
    "login",
    "logout",
    "redeem_token",
    "register_guest",
    "request_email_change",
    "request_password_reset",
    "revoke_session_keys",
    "update_me",
    "user_representation",
]
