"""FastAPI application for the guest account API."""

from __future__ import annotations

import secrets
from typing import Optional, Tuple

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.sessions import SessionMiddleware

import database
from core.env import env_bool, env_int, env_str, load_dotenv_if_available, require_env_vars
from core.guest.settings import GuestSettings
from core.logging import get_logger, setup_logging
from web import jsend, routers
from web.cors import cors_middleware_options
from web.deps import get_guest_settings

logger = get_logger(__name__)

SESSION_COOKIE_NAME = "guest_session"
_PRODUCTION_ENV_VARS = ("GUEST_SESSION_SECRET", "SMTP_HOST", "SMTP_FROM")


def ping_database() -> Tuple[bool, Optional[str]]:
    """Return database connectivity status and optional error message."""
    db = database.SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        return True, None
    except SQLAlchemyError as exc:
        return False, str(exc)
    finally:
        db.close()


def _session_secret() -> str:
    secret = env_str("GUEST_SESSION_SECRET")
    if secret:
        return secret
    logger.warning("GUEST_SESSION_SECRET is not set; sessions will not survive a restart.")
    return secrets.token_urlsafe(32)


async def _validation_failed(request: Request, exc: RequestValidationError) -> JSONResponse:
    data = {}
    for item in exc.errors():
        location = [str(part) for part in item.get("loc", ()) if part not in ("body", "query")]
        data[".".join(location) or "request"] = item.get("msg", "Invalid value.")
    return jsend.fail(data or None, status_code=status.HTTP_400_BAD_REQUEST)


async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return jsend.error()


def create_app(settings: Optional[GuestSettings] = None) -> FastAPI:
    setup_logging()
    load_dotenv_if_available()
    if env_bool("GUEST_PRODUCTION", False):
        require_env_vars(_PRODUCTION_ENV_VARS, context="guest")

    settings = settings or get_guest_settings()

    app = FastAPI(title="Guest Accounts API")
    app.add_middleware(
        SessionMiddleware,
        secret_key=_session_secret(),
        session_cookie=SESSION_COOKIE_NAME,
        max_age=env_int("GUEST_SESSION_MAX_AGE_SECONDS", 14 * 24 * 60 * 60, minimum=60),
        same_site="none",
        https_only=True,
    )
    # Added last so it wraps the session layer and answers preflights first.
    app.add_middleware(CORSMiddleware, **cors_middleware_options(settings.cors_origins))
    app.add_exception_handler(RequestValidationError, _validation_failed)
    app.add_exception_handler(Exception, _unexpected_error)

    @app.get("/healthz", include_in_schema=False)
    def health_probe():
        """Lightweight liveness probe including database connectivity."""
        db_ok, db_error = ping_database()
        payload = {"status": "ok" if db_ok else "unhealthy", "database": {"ok": db_ok}}
        if db_error:
            payload["database"]["error"] = db_error
        status_code = status.HTTP_200_OK if db_ok else status.HTTP_503_SERVICE_UNAVAILABLE
        return JSONResponse(status_code=status_code, content=payload)

    app.include_router(routers.guest.router, prefix="/api")
    return app


app = create_app()
