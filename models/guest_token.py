"""SQLAlchemy model for email confirmation tokens."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String

from database import Base
from models.user import _utcnow


class GuestToken(Base):
    """Single-use token proving control of an email address.

    Tokens are never deleted: once redeemed they stay with ``confirmed=True``.
    The most recent token of an email decides whether a registration is still
    pending.
    """

    __tablename__ = "guest_tokens"
    __table_args__ = {"extend_existing": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    token = Column(String(64), nullable=False, unique=True, index=True)
    email = Column(String(190), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    confirmed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
