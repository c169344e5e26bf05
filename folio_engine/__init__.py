"""
Folio Engine - Portfolio backup and restore service

A FastAPI-based service that exports an artist's artworks, site settings
and profile into a portable ZIP archive and restores it into any account.
"""

__version__ = "0.1.0"
