"""Database package for Folio Engine."""

from .database import get_db, init_db

__all__ = ["get_db", "init_db"]
