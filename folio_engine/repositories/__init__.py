"""Repository pattern for database operations."""

from .account_repository import AccountRepository
from .artwork_repository import ArtworkRepository
from .site_repository import SettingsRepository, ProfileRepository

__all__ = [
    "AccountRepository",
    "ArtworkRepository",
    "SettingsRepository",
    "ProfileRepository",
]
