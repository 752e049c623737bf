"""SQLAlchemy model for the optional public user name of an account."""

from sqlalchemy import Column, ForeignKey, Integer, String

from database import Base


class UserName(Base):
    __tablename__ = "user_names"
    __table_args__ = {"extend_existing": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    username = Column(String(190), nullable=False, unique=True)
