"""Bearer identity/credential pairs for stateless guest API access."""

from __future__ import annotations

import hashlib
import hmac
import secrets
import string
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.guest.constants import GUEST_SESSION_LABEL
from core.logging import get_logger
from models.api_key import ApiKey
from models.user import User

from .common import SessionKey, utcnow

logger = get_logger(__name__)

_IDENTITY_ALPHABET = string.ascii_letters + string.digits
_IDENTITY_LENGTH = 32


def _credential_digest(credential: str) -> str:
    return hashlib.sha256(credential.encode("utf-8")).hexdigest()


def _new_identity() -> str:
    return "".join(secrets.choice(_IDENTITY_ALPHABET) for _ in range(_IDENTITY_LENGTH))


def revoke_session_keys(session: Session, user: User, *, label: str = GUEST_SESSION_LABEL) -> int:
    """Delete every key of ``user`` carrying ``label``; keys with other labels stay."""

    keys = session.execute(select(ApiKey).where(ApiKey.owner_id == user.id, ApiKey.label == label)).scalars().all()
    for key in keys:
        session.delete(key)
    session.commit()
    removed = len(keys)
    if removed:
        logger.info("Revoked %d session key(s) of user %s.", removed, user.id)
    return removed


def issue_session_key(session: Session, user: User, *, label: str = GUEST_SESSION_LABEL) -> SessionKey:
    """Replace the user's session key and return the plaintext credential once."""

    revoke_session_keys(session, user, label=label)
    identity = _new_identity()
    credential = secrets.token_urlsafe(24)
    session.add(
        ApiKey(
            id=identity,
            label=label,
            owner_id=user.id,
            credential_hash=_credential_digest(credential),
        )
    )
    session.commit()
    return SessionKey(identity=identity, credential=credential, user_id=user.id)


def authenticate_session_key(session: Session, identity: Optional[str], credential: Optional[str]) -> Optional[User]:
    """Resolve the owner of a key pair, or ``None`` when the pair does not match."""

    if not identity or not credential:
        return None
    record = session.execute(select(ApiKey).where(ApiKey.id == identity)).scalars().first()
    if record is None:
        return None
    if not hmac.compare_digest(record.credential_hash, _credential_digest(credential)):
        return None
    user = session.get(User, record.owner_id)
    if user is None or not user.is_active:
        return None
    record.last_used_at = utcnow()
    session.commit()
    return user


__all__ = ["authenticate_session_key", "issue_session_key", "revoke_session_keys"]
