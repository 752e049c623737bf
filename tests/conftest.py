import os
from dataclasses import replace
from typing import Any, Callable, Dict, Generator, List, Optional, Sequence

os.environ.setdefault("DATABASE_ALLOW_NON_POSTGRES", "1")
os.environ.setdefault("TEST_DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("DATABASE_URL", os.getenv("DATABASE_URL", os.environ["TEST_DATABASE_URL"]))
os.environ.setdefault("GUEST_SESSION_SECRET", "test-session-secret")
# Cheap hashes keep the suite fast.
os.environ.setdefault("GUEST_ARGON2_TIME_COST", "1")
os.environ.setdefault("GUEST_ARGON2_MEMORY_COST", "8192")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from core.guest.settings import GuestSettings
from database import Base
from models.site import Site
from models.user import User
from services.guest.common import RequestContext, hash_password


class RecordingMailer:
    """Mailer double keeping every message instead of sending it."""

    def __init__(self, result: bool = True) -> None:
        self.result = result
        self.sent: List[Dict[str, Any]] = []

    def send(self, recipients: Sequence[str], subject: str, body: str, *, name: Optional[str] = None) -> bool:
        self.sent.append({"to": list(recipients), "subject": subject, "body": body, "name": name})
        return self.result


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture()
def make_settings() -> Callable[..., GuestSettings]:
    def _factory(**overrides: Any) -> GuestSettings:
        overrides.setdefault("security_delay_seconds", 0.0)
        return replace(GuestSettings(), **overrides)

    return _factory


@pytest.fixture()
def settings(make_settings: Callable[..., GuestSettings]) -> GuestSettings:
    return make_settings()


@pytest.fixture()
def anonymous() -> RequestContext:
    return RequestContext(ip="127.0.0.1", user_agent="pytest")


@pytest.fixture()
def make_user(db_session: Session) -> Callable[..., User]:
    def _factory(
        email: str = "guest@example.com",
        *,
        password: Optional[str] = "secret1",
        active: bool = True,
        role: str = "guest",
        name: str = "Guest",
    ) -> User:
        user = User(
            email=email,
            name=name,
            role=role,
            is_active=active,
            password_hash=hash_password(password) if password else None,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _factory


@pytest.fixture()
def make_site(db_session: Session) -> Callable[..., Site]:
    def _factory(slug: str = "library", title: str = "Public library") -> Site:
        site = Site(slug=slug, title=title)
        db_session.add(site)
        db_session.commit()
        return site

    return _factory
