"""SQLAlchemy model for numeric password reset codes."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String

from database import Base
from models.user import _utcnow


class PasswordResetCode(Base):
    __tablename__ = "password_reset_codes"
    __table_args__ = {"extend_existing": True}

    # The code itself is the primary key so that lookups need nothing else.
    id = Column(String(16), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    activate = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
