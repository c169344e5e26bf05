"""Database models for portfolio data: artworks, site settings, and profiles."""

from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text, ForeignKey, JSON, Integer, Boolean

from folio_engine.db.database import Base
from folio_engine.models.account import generate_uuid


class Artwork(Base):
    """
    A gallery piece.

    Image columns stay empty until bytes are stored in the object store;
    `storage_path` is the object-store folder key shared by all variants.
    """
    __tablename__ = "artworks"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    account_id = Column(String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(300), nullable=False)
    description = Column(Text, nullable=True)
    medium = Column(String(200), nullable=True)
    dimensions = Column(String(200), nullable=True)
    year_created = Column(Integer, nullable=True)
    price = Column(String(50), nullable=True)
    tags = Column(JSON, nullable=False, default=list)

    image_url = Column(String(1000), nullable=True)
    thumbnail_url = Column(String(1000), nullable=True)
    original_url = Column(String(1000), nullable=True)
    storage_path = Column(String(500), nullable=True)

    status = Column(String(20), nullable=False, default="published")  # published | draft | archived
    featured = Column(Boolean, nullable=False, default=False)
    sort_order = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Artwork(id={self.id}, account={self.account_id}, title={self.title})>"


class SiteSettings(Base):
    """Site configuration for one account, stored as a single JSON object."""
    __tablename__ = "settings"

    account_id = Column(String(36), ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True)
    settings = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<SiteSettings(account={self.account_id}, keys={len(self.settings or {})})>"


class Profile(Base):
    """Artist profile for one account, stored as a single JSON record."""
    __tablename__ = "profiles"

    account_id = Column(String(36), ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True)
    record = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Profile(account={self.account_id})>"
