"""Optional companion capabilities injected into guest workflows."""

from __future__ import annotations

import re
from typing import Optional, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from models.user import User
from models.user_name import UserName

from .common import GuestServiceError

_USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{1,188}$")


class UsernameCapability(Protocol):
    """Public user name attached to an account at registration."""

    enabled: bool

    def validate(self, session: Session, username: Optional[str]) -> str:
        ...

    def attach(self, session: Session, user: User, username: str) -> None:
        ...


class NoUsernameCapability:
    """Default provider: accounts have no user name."""

    enabled = False

    def validate(self, session: Session, username: Optional[str]) -> str:
        return username or ""

    def attach(self, session: Session, user: User, username: str) -> None:
        return None


class StoredUsernameCapability:
    """User names kept in the ``user_names`` table, unique across accounts."""

    enabled = True

    def __init__(self, pattern: "re.Pattern[str]" = _USERNAME_PATTERN):
        self._pattern = pattern

    def validate(self, session: Session, username: Optional[str]) -> str:
        value = (username or "").strip()
        if not value:
            raise GuestServiceError("guest.username_required", "The user name cannot be empty.")
        if not self._pattern.match(value):
            raise GuestServiceError(
                "guest.username_invalid",
                f'The user name "{value}" contains forbidden characters.',
            )
        existing = session.execute(select(UserName.id).where(UserName.username == value)).first()
        if existing is not None:
            raise GuestServiceError("guest.username_taken", f'The user name "{value}" is already taken.')
        return value

    def attach(self, session: Session, user: User, username: str) -> None:
        session.add(UserName(user_id=user.id, username=username))
        session.commit()


__all__ = ["NoUsernameCapability", "StoredUsernameCapability", "UsernameCapability"]
