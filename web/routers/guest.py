"""Guest account endpoints answering with JSend envelopes."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse, RedirectResponse, Response
from sqlalchemy.orm import Session

from core.guest.constants import SESSION_USER_KEY
from core.guest.settings import GuestSettings
from core.logging import get_logger
from database import get_db
from models.user import User
from schemas.api.guest import ForgotPasswordRequest, LoginRequest, MePatchRequest, RegisterRequest
from services.email_service import Mailer
from services.guest import (
    GuestServiceError,
    RequestContext,
    UsernameCapability,
    confirm_email,
    confirm_password_reset,
    confirm_registration,
    issue_session_key,
    login,
    logout,
    register_guest,
    request_password_reset,
    update_me,
    user_representation,
)
from web import jsend
from web.cors import CorsDecision
from web.deps import get_cors, get_guest_settings, get_mailer, get_request_context, get_username_capability

logger = get_logger(__name__)

router = APIRouter(prefix="/guest", tags=["Guest"])


def _reply(data: Optional[Dict[str, Any]] = None, message: Optional[str] = None) -> JSONResponse:
    return jsend.success(data, message)


def _failure(exc: GuestServiceError) -> JSONResponse:
    if exc.status == jsend.ERROR:
        return jsend.error(str(exc), status_code=exc.status_code, code=exc.code)
    return jsend.fail({exc.field: str(exc)}, status_code=exc.status_code, code=exc.code)


def _guard(cors: CorsDecision) -> None:
    if not cors.allowed:
        raise GuestServiceError("guest.cors_forbidden", "Access forbidden.", status.HTTP_403_FORBIDDEN)


def _require_user(context: RequestContext) -> User:
    if context.user is None:
        raise GuestServiceError("guest.unauthorized", "Unauthorized access.", status.HTTP_401_UNAUTHORIZED)
    return context.user


def _session_token_reply(db: Session, user: User) -> JSONResponse:
    key = issue_session_key(db, user)
    return _reply(
        {
            "session_token": {
                "user": {"id": user.id},
                "key_identity": key.identity,
                "key_credential": key.credential,
            }
        },
    )


def _safe_redirect(target: Optional[str], settings: GuestSettings) -> Optional[str]:
    if not target:
        return None
    if target.startswith("/") and not target.startswith("//"):
        return target
    if target.startswith(settings.frontend_base_url.rstrip("/") + "/"):
        return target
    logger.warning("Ignoring login redirect outside the frontend: %s", target)
    return None


@router.get("/me", summary="Current guest account")
def read_me(
    context: RequestContext = Depends(get_request_context),
    cors: CorsDecision = Depends(get_cors),
) -> JSONResponse:
    try:
        _guard(cors)
        user = _require_user(context)
    except GuestServiceError as exc:
        return _failure(exc)
    return _reply({"user": user_representation(user)})


@router.patch("/me", summary="Partially update the current guest account")
def patch_me(
    payload: Optional[MePatchRequest] = None,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
    settings: GuestSettings = Depends(get_guest_settings),
    mailer: Mailer = Depends(get_mailer),
    cors: CorsDecision = Depends(get_cors),
) -> JSONResponse:
    data = payload.model_dump(exclude_unset=True) if payload is not None else {}
    try:
        _guard(cors)
        user = _require_user(context)
        result = update_me(db, user, data, settings=settings, mailer=mailer, context=context)
    except GuestServiceError as exc:
        return _failure(exc)
    return _reply({"user": user_representation(result.user)}, result.message)


@router.post("/login", summary="Log in with email and password")
def login_guest(
    request: Request,
    payload: Optional[LoginRequest] = None,
    redirect: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
    settings: GuestSettings = Depends(get_guest_settings),
    cors: CorsDecision = Depends(get_cors),
) -> Response:
    payload = payload or LoginRequest()
    try:
        _guard(cors)
        user = login(db, email=payload.email, password=payload.password, settings=settings, context=context)
    except GuestServiceError as exc:
        return _failure(exc)

    if settings.login_session:
        request.session[SESSION_USER_KEY] = user.id
    else:
        request.session.pop(SESSION_USER_KEY, None)

    target = _safe_redirect(redirect, settings)
    if target:
        return RedirectResponse(target, status_code=status.HTTP_302_FOUND)
    return _session_token_reply(db, user)


@router.post("/logout", summary="Log out and revoke session keys")
def logout_guest(
    request: Request,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
    cors: CorsDecision = Depends(get_cors),
) -> JSONResponse:
    try:
        _guard(cors)
        user = logout(db, context=context)
    except GuestServiceError as exc:
        return _failure(exc)
    request.session.clear()
    logger.info("User %s logged out.", user.id)
    return _reply({"user": None}, "Successfully logout.")


@router.api_route("/session-token", methods=["GET", "POST"], summary="Issue a new session key")
def session_token(
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
    cors: CorsDecision = Depends(get_cors),
) -> JSONResponse:
    try:
        _guard(cors)
        user = _require_user(context)
    except GuestServiceError as exc:
        return _failure(exc)
    return _session_token_reply(db, user)


@router.post("/register", summary="Register a guest account")
def register(
    payload: Optional[RegisterRequest] = None,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
    settings: GuestSettings = Depends(get_guest_settings),
    mailer: Mailer = Depends(get_mailer),
    usernames: UsernameCapability = Depends(get_username_capability),
    cors: CorsDecision = Depends(get_cors),
) -> JSONResponse:
    data = payload.model_dump(exclude_none=True) if payload is not None else {}
    try:
        _guard(cors)
        result = register_guest(db, data, context=context, settings=settings, mailer=mailer, usernames=usernames)
    except GuestServiceError as exc:
        return _failure(exc)
    return _reply({"user": user_representation(result.user)}, result.message)


@router.post("/forgot-password", summary="Request or redeem a password reset code")
def forgot_password(
    payload: Optional[ForgotPasswordRequest] = None,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
    settings: GuestSettings = Depends(get_guest_settings),
    mailer: Mailer = Depends(get_mailer),
    cors: CorsDecision = Depends(get_cors),
) -> JSONResponse:
    payload = payload or ForgotPasswordRequest()
    try:
        _guard(cors)
        if not payload.token:
            result = request_password_reset(
                db, email=payload.email, mailer=mailer, settings=settings, context=context
            )
            return _reply({"email": result.email})
        user = confirm_password_reset(
            db,
            email=payload.email,
            code=payload.token,
            password=payload.password,
            settings=settings,
            context=context,
        )
    except GuestServiceError as exc:
        return _failure(exc)
    return _reply({"user": user_representation(user)})


@router.get("/confirm", summary="Confirm a registration from the emailed link")
def confirm(
    token: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
    settings: GuestSettings = Depends(get_guest_settings),
) -> JSONResponse:
    try:
        result = confirm_registration(db, token=token, settings=settings, site=context.site)
    except GuestServiceError as exc:
        return _failure(exc)
    return _reply({"user": user_representation(result.user)}, result.message)


def _confirm_email(
    db: Session, token: Optional[str], context: RequestContext, settings: GuestSettings, *, is_update: bool
) -> JSONResponse:
    try:
        result = confirm_email(db, token=token, settings=settings, is_update=is_update, site=context.site)
    except GuestServiceError as exc:
        return _failure(exc)
    return _reply({"user": user_representation(result.user)}, result.message)


@router.get("/confirm-email", summary="Confirm the email of a new account")
def confirm_email_link(
    token: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
    settings: GuestSettings = Depends(get_guest_settings),
) -> JSONResponse:
    return _confirm_email(db, token, context, settings, is_update=False)


@router.get("/validate-email", summary="Confirm a change of email")
def validate_email_link(
    token: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
    settings: GuestSettings = Depends(get_guest_settings),
) -> JSONResponse:
    return _confirm_email(db, token, context, settings, is_update=True)


__all__ = ["router"]
