"""SQLAlchemy model for API keys used as bearer session credentials."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from database import Base
from models.user import _utcnow


class ApiKey(Base):
    __tablename__ = "api_keys"
    __table_args__ = {"extend_existing": True}

    id = Column(String(64), primary_key=True)
    label = Column(String(190), nullable=False, index=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    credential_hash = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    last_used_at = Column(DateTime(timezone=True), nullable=True)
