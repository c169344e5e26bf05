"""Repositories for the per-account singleton rows: site settings and profile."""

from typing import Any, Dict, Optional
from datetime import datetime
from sqlalchemy.orm import Session

from folio_engine.models.portfolio import SiteSettings, Profile


class SettingsRepository:
    """Handle database operations for site settings (one row per account)."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, account_id: str) -> Optional[SiteSettings]:
        return self.db.query(SiteSettings).filter(SiteSettings.account_id == account_id).first()

    def upsert(self, account_id: str, settings: Dict[str, Any]) -> SiteSettings:
        """Create or overwrite the settings object. Flushes, does not commit."""
        row = self.get(account_id)
        if row is None:
            row = SiteSettings(account_id=account_id, settings=dict(settings))
            self.db.add(row)
        else:
            row.settings = dict(settings)
            row.updated_at = datetime.utcnow()
        self.db.flush()
        return row

    def delete(self, account_id: str) -> int:
        """Delete the settings row. Returns number of rows removed."""
        row = self.get(account_id)
        if row is None:
            return 0
        self.db.delete(row)
        self.db.flush()
        return 1


class ProfileRepository:
    """Handle database operations for artist profiles (one row per account)."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, account_id: str) -> Optional[Profile]:
        return self.db.query(Profile).filter(Profile.account_id == account_id).first()

    def upsert(self, account_id: str, record: Dict[str, Any]) -> Profile:
        """Create or overwrite the profile record. Flushes, does not commit."""
        row = self.get(account_id)
        if row is None:
            row = Profile(account_id=account_id, record=dict(record))
            self.db.add(row)
        else:
            row.record = dict(record)
            row.updated_at = datetime.utcnow()
        self.db.flush()
        return row

    def delete(self, account_id: str) -> int:
        """Delete the profile row. Returns number of rows removed."""
        row = self.get(account_id)
        if row is None:
            return 0
        self.db.delete(row)
        self.db.flush()
        return 1
