"""Database model for accounts."""

from datetime import datetime
from sqlalchemy import Column, String, DateTime
import uuid

from folio_engine.db.database import Base


def generate_uuid():
    """Generate a UUID string."""
    return str(uuid.uuid4())


class Account(Base):
    """
    An artist account.

    Every artwork, settings row and profile row is owned by exactly one account.
    API tokens are stored hashed; the plaintext is only shown once when issued.
    """
    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), nullable=False, unique=True)
    display_name = Column(String(200), nullable=True)
    api_token_hash = Column(String(64), nullable=True, unique=True, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self):
        return f"<Account(id={self.id}, email={self.email})>"
