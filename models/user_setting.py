"""SQLAlchemy model for free-form per-user settings."""

from sqlalchemy import JSON, Column, ForeignKey, Integer, String, UniqueConstraint

from database import Base


class UserSetting(Base):
    __tablename__ = "user_settings"
    __table_args__ = (
        UniqueConstraint("user_id", "key", name="uq_user_settings_user_key"),
        {"extend_existing": True},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    key = Column(String(190), nullable=False)
    value = Column(JSON, nullable=True)
