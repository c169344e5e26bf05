"""Portfolio backup service: builds a portable archive from one account's live data."""

import logging
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from folio_engine.models.portfolio import Artwork
from folio_engine.repositories import ArtworkRepository, SettingsRepository, ProfileRepository
from folio_engine.services.account_resolver import AccountResolver
from folio_engine.services.archive_codec import (
    ArchiveCodec,
    ARTWORKS_PATH,
    AVATAR_PREFIX,
    METADATA_PATH,
    PROFILE_PATH,
    RESULTS_PATH,
    SETTINGS_PATH,
    image_entry_path,
)
from folio_engine.services.backup_errors import BackupError
from folio_engine.services.backup_types import (
    ArtworkRecord,
    BackupArchive,
    BackupMetadata,
    Component,
    parse_components,
)
from folio_engine.services.image_storage import ImageStorageService, ImageStorageError

logger = logging.getLogger(__name__)


class PortfolioBackupService:
    """
    Service for creating portfolio backups.

    Export only reads: nothing in the live dataset or object store changes.
    """

    # Current backup format version - increment when format changes
    BACKUP_FORMAT_VERSION = 1

    def __init__(
        self,
        db: Session,
        storage: ImageStorageService,
        codec: Optional[ArchiveCodec] = None,
    ):
        """
        Initialize backup service.

        Args:
            db: SQLAlchemy database session
            storage: Object store holding artwork images and avatars
            codec: Archive codec (a default one is created if omitted)
        """
        self.db = db
        self.storage = storage
        self.codec = codec or ArchiveCodec()

    def create_backup(
        self,
        account_id: str,
        components: Union[str, Iterable[str]],
    ) -> BackupArchive:
        """
        Build an archive of the selected components for one account.

        Args:
            account_id: Account whose data is exported
            components: Component names (iterable or comma-separated string)

        Returns:
            BackupArchive with the ZIP bytes, suggested filename and warnings

        Raises:
            InvalidSelectionError: Empty or unknown component selection
            Unauthorized: Unknown account
            BackupError: Live metadata could not be read
        """
        selected = parse_components(components)
        AccountResolver(self.db).require_account(account_id)

        logger.info(
            f"Starting backup for account {account_id}: "
            f"{', '.join(c.value for c in selected)}"
        )

        entries: Dict[str, Any] = {}
        results: Dict[str, Dict[str, Any]] = {}
        warnings: List[str] = []

        try:
            for component in selected:
                if component == Component.ARTWORKS:
                    results[component.value] = self._export_artworks(account_id, entries, warnings)
                elif component == Component.SETTINGS:
                    results[component.value] = self._export_settings(account_id, entries)
                elif component == Component.PROFILE:
                    results[component.value] = self._export_profile(account_id, entries, warnings)
        except SQLAlchemyError as e:
            logger.error(f"Backup failed for account {account_id}: {e}", exc_info=True)
            raise BackupError(f"Failed to read portfolio data for backup: {e}") from e

        created_at = datetime.now(timezone.utc).isoformat()
        metadata = BackupMetadata(
            version=self.BACKUP_FORMAT_VERSION,
            created_at=created_at,
            components=[c.value for c in selected],
        )

        archive_entries: Dict[str, Any] = {METADATA_PATH: metadata.to_dict()}
        archive_entries.update(entries)
        archive_entries[RESULTS_PATH] = {"results": results, "warnings": warnings}

        data = self.codec.encode(archive_entries)
        filename = self.archive_filename(selected, created_at)

        for warning in warnings:
            logger.warning(f"Backup warning: {warning}")
        logger.info(
            f"Backup created for account {account_id}: {filename} "
            f"({len(data) / (1024 * 1024):.2f} MB, {len(warnings)} warning(s))"
        )

        return BackupArchive(
            data=data,
            filename=filename,
            metadata=metadata,
            results=results,
            warnings=warnings,
        )

    @staticmethod
    def archive_filename(components: List[Component], created_at: str) -> str:
        day = created_at.split("T")[0]
        return f"artsite-backup-{'-'.join(c.value for c in components)}-{day}.zip"

    def _export_artworks(
        self,
        account_id: str,
        entries: Dict[str, Any],
        warnings: List[str],
    ) -> Dict[str, Any]:
        """
        Export artwork records and their image bytes.

        A missing or unreadable image drops only that image; its record stays.
        """
        artworks = ArtworkRepository(self.db).list_by_account(account_id)

        records = []
        image_count = 0
        for artwork in artworks:
            image = self._fetch_artwork_image(artwork)
            image_filename = None
            if isinstance(image, tuple):
                data, extension = image
                path = image_entry_path(artwork.id, artwork.title, extension)
                entries[path] = data
                image_filename = PurePosixPath(path).name
                image_count += 1
            elif image is not None:
                warnings.append(image)

            records.append(self._artwork_record(artwork, image_filename).to_dict())

        # Written even when empty so every listed component has its entry
        entries[ARTWORKS_PATH] = records
        logger.info(f"Exported {len(records)} artworks ({image_count} images)")
        return {"success": True, "count": len(records), "images": image_count}

    def _artwork_record(self, artwork: Artwork, image_filename: Optional[str]) -> ArtworkRecord:
        return ArtworkRecord(
            old_id=artwork.id,
            title=artwork.title,
            description=artwork.description,
            medium=artwork.medium,
            dimensions=artwork.dimensions,
            year_created=artwork.year_created,
            price=artwork.price,
            tags=list(artwork.tags or []),
            image_filename=image_filename,
            featured=bool(artwork.featured),
            sort_order=artwork.sort_order or 0,
            created_at=artwork.created_at.isoformat() if artwork.created_at else None,
        )

    def _fetch_artwork_image(self, artwork: Artwork) -> Union[Tuple[bytes, str], str, None]:
        """
        Fetch the best available image bytes for an artwork.

        Returns:
            (bytes, extension) on success, a warning string on failure,
            or None when the artwork has no image at all
        """
        candidates = []
        for url in (artwork.original_url, artwork.image_url):
            key = self.storage.key_from_url(url)
            if key and key not in candidates:
                candidates.append(key)

        if not candidates:
            if artwork.storage_path or artwork.image_url:
                return f"Image for artwork {artwork.id} ({artwork.title}) is not in this object store"
            return None

        for key in candidates:
            try:
                data = self.storage.get(key)
            except ImageStorageError as e:
                logger.debug(f"Could not read {key}: {e}")
                continue
            if data is not None:
                extension = PurePosixPath(key).suffix.lstrip(".").lower() or "jpg"
                return data, extension

        return f"Failed to fetch image for artwork {artwork.id} ({artwork.title})"

    def _export_settings(self, account_id: str, entries: Dict[str, Any]) -> Dict[str, Any]:
        row = SettingsRepository(self.db).get(account_id)
        settings = dict(row.settings) if row and row.settings else {}
        entries[SETTINGS_PATH] = settings
        logger.info(f"Exported {len(settings)} settings")
        return {"success": True, "count": len(settings)}

    def _export_profile(
        self,
        account_id: str,
        entries: Dict[str, Any],
        warnings: List[str],
    ) -> Dict[str, Any]:
        row = ProfileRepository(self.db).get(account_id)
        record = dict(row.record) if row and row.record else {}
        entries[PROFILE_PATH] = record

        avatar_backed_up = False
        if record.get("avatar_type") == "uploaded" and record.get("avatar_url"):
            key = self.storage.key_from_url(record["avatar_url"])
            data = None
            if key:
                try:
                    data = self.storage.get(key)
                except ImageStorageError as e:
                    logger.debug(f"Could not read avatar {key}: {e}")
            if data is not None:
                extension = PurePosixPath(key).suffix.lstrip(".").lower() or "png"
                entries[f"{AVATAR_PREFIX}{extension}"] = data
                avatar_backed_up = True
            else:
                warnings.append("Failed to backup avatar")

        logger.info(f"Exported profile (avatar included: {avatar_backed_up})")
        return {"success": True, "count": 1 if row else 0, "avatar": avatar_backed_up}
