"""Models package for Folio Engine."""

from .account import Account
from .portfolio import Artwork, SiteSettings, Profile

__all__ = [
    "Account",
    "Artwork",
    "SiteSettings",
    "Profile",
]
