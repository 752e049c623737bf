"""SQLAlchemy models for sites and per-site user permissions."""

from sqlalchemy import Column, ForeignKey, Integer, String, UniqueConstraint

from database import Base


class Site(Base):
    __tablename__ = "sites"
    __table_args__ = {"extend_existing": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    slug = Column(String(190), nullable=False, unique=True)
    title = Column(String(255), nullable=False)


class SitePermission(Base):
    __tablename__ = "site_permissions"
    __table_args__ = (
        UniqueConstraint("site_id", "user_id", name="uq_site_permissions_site_user"),
        {"extend_existing": True},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    site_id = Column(Integer, ForeignKey("sites.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(32), nullable=False, default="viewer")
