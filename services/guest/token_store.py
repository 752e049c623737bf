"""Persistence of single-use email confirmation tokens."""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.logging import get_logger
from models.guest_token import GuestToken
from models.user import User

from .common import GuestServiceError, normalize_email

logger = get_logger(__name__)

_TOKEN_BYTES = 24


@dataclass(frozen=True)
class RedeemedToken:
    id: int
    email: str
    user_id: int


def _generate_token() -> str:
    return secrets.token_urlsafe(_TOKEN_BYTES)


def issue_token(session: Session, *, email: str, user: User) -> GuestToken:
    """Create an unconfirmed token for ``email`` owned by ``user`` and commit it."""

    record = GuestToken(
        token=_generate_token(),
        email=normalize_email(email),
        user_id=user.id,
        confirmed=False,
    )
    session.add(record)
    session.commit()
    session.refresh(record)
    logger.debug("Issued confirmation token %s for user %s.", record.id, user.id)
    return record


def find_token(session: Session, token: Optional[str]) -> Optional[GuestToken]:
    if not token:
        return None
    return session.execute(select(GuestToken).where(GuestToken.token == token)).scalars().first()


def latest_token_for_email(session: Session, email: str) -> Optional[GuestToken]:
    """Most recent token of an email; it alone decides whether a registration is pending."""

    statement = (
        select(GuestToken)
        .where(GuestToken.email == normalize_email(email))
        .order_by(GuestToken.id.desc())
        .limit(1)
    )
    return session.execute(statement).scalars().first()


def confirm_all_for_email(session: Session, email: str) -> int:
    """Mark every unconfirmed token of ``email`` as confirmed. Does not commit."""

    pending = session.execute(
        select(GuestToken).where(GuestToken.email == normalize_email(email), GuestToken.confirmed.is_(False))
    ).scalars().all()
    for record in pending:
        record.confirmed = True
    return len(pending)


def redeem_token(session: Session, token: Optional[str], *, not_found_message: str = "Invalid token.") -> RedeemedToken:
    """Consume a token and confirm its siblings, then commit.

    Raises ``GuestServiceError`` when the token is unknown or already confirmed;
    nothing is written in that case.
    """

    record = find_token(session, token)
    if record is None:
        raise GuestServiceError("guest.token_invalid", not_found_message, field="token")
    if record.confirmed:
        raise GuestServiceError("guest.token_used", "This token has already been used.", field="token")

    record.confirmed = True
    session.flush()
    siblings = confirm_all_for_email(session, record.email)
    session.commit()
    logger.info("Confirmation token %s redeemed (%d sibling token(s) confirmed).", record.id, siblings)
    return RedeemedToken(id=record.id, email=record.email, user_id=record.user_id)


__all__ = [
    "RedeemedToken",
    "confirm_all_for_email",
    "find_token",
    "issue_token",
    "latest_token_for_email",
    "redeem_token",
]
