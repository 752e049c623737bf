"""SQLAlchemy model for user accounts."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"
    __table_args__ = {"extend_existing": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(190), nullable=False, unique=True, index=True)
    name = Column(String(190), nullable=False)
    role = Column(String(32), nullable=False, default="guest")
    is_active = Column(Boolean, nullable=False, default=False)
    password_hash = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"<User id={self.id!r} email={self.email!r} role={self.role!r}>"
