"""Engine and session factory for the guest account store."""

from typing import Any, Dict, Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from core.env import env_bool, env_str, load_dotenv_if_available

load_dotenv_if_available()

TEST_DATABASE_URL = env_str("TEST_DATABASE_URL")
DATABASE_URL = env_str("DATABASE_URL") or TEST_DATABASE_URL
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL or TEST_DATABASE_URL must be set.")

IS_POSTGRES = DATABASE_URL.lower().startswith("postgresql")
IS_SQLITE = DATABASE_URL.lower().startswith("sqlite")
if not IS_POSTGRES and not env_bool("DATABASE_ALLOW_NON_POSTGRES", False):
    raise RuntimeError(f"Guest accounts need a PostgreSQL DSN; got {DATABASE_URL}.")


def _engine_options() -> Dict[str, Any]:
    if IS_SQLITE:
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


engine = create_engine(DATABASE_URL, echo=env_bool("DATABASE_ECHO", False), **_engine_options())
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    """Declarative base shared by the guest models."""


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session for FastAPI dependencies."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
