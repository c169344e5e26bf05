"""Metadata restore: recreate artwork, settings and profile rows from a decoded archive."""

import logging
from pathlib import PurePosixPath
from typing import Any, Dict, Iterable, List, Union

from sqlalchemy.orm import Session

from folio_engine.repositories import ArtworkRepository, SettingsRepository, ProfileRepository
from folio_engine.services.account_resolver import AccountResolver
from folio_engine.services.archive_codec import DecodedArchive
from folio_engine.services.backup_errors import ComponentRestoreFailed
from folio_engine.services.backup_types import (
    ArtworkRecord,
    Component,
    MetadataRestoreOutcome,
    RestoreMode,
    RestoreResult,
    RESTORE_ORDER,
    parse_components,
    parse_restore_mode,
)
from folio_engine.services.image_storage import ImageStorageService, ImageStorageError

logger = logging.getLogger(__name__)

# Never trusted from an archive; ownership is always the acting account
OWNERSHIP_FIELDS = ("id", "account_id", "user_id")


class MetadataRestoreService:
    """
    Restores component rows for one account.

    Each component runs in its own transaction: a failure rolls back that
    component only and is recorded as a failed RestoreResult, while the
    remaining components still run.
    """

    def __init__(self, db: Session, storage: ImageStorageService):
        """
        Initialize restore service.

        Args:
            db: Database session
            storage: Object store (replaced artwork images and avatars live here)
        """
        self.db = db
        self.storage = storage

    def restore_metadata(
        self,
        account_id: str,
        archive: DecodedArchive,
        components: Union[str, Iterable[str]],
        mode: Union[str, RestoreMode],
    ) -> MetadataRestoreOutcome:
        """
        Restore the selected components from a decoded archive.

        Components run in the order artworks, settings, profile.

        Args:
            account_id: Acting account; every created row belongs to it
            archive: Decoded archive
            components: Components to restore
            mode: "add" keeps live rows, "replace" deletes them first

        Returns:
            Per-component results and the old_id -> new_id artwork mapping

        Raises:
            Unauthorized: Unknown account
            InvalidSelectionError: Bad component selection or mode
        """
        selected = parse_components(components)
        mode = parse_restore_mode(mode)
        AccountResolver(self.db).require_account(account_id)

        logger.info(
            f"Restoring metadata for account {account_id} "
            f"(mode={mode.value}, components={[c.value for c in selected]})"
        )

        results: Dict[Component, RestoreResult] = {}
        id_mapping: Dict[str, str] = {}

        for component in RESTORE_ORDER:
            if component not in selected:
                continue

            if component not in archive.components:
                logger.warning(f"Component {component.value} not found in backup")
                results[component] = RestoreResult(
                    component=component,
                    success=False,
                    error="Component not found in backup",
                )
                continue

            try:
                if component == Component.ARTWORKS:
                    result, mapping = self._restore_artworks(account_id, archive, mode)
                    id_mapping = mapping
                elif component == Component.SETTINGS:
                    result = self._restore_settings(account_id, archive, mode)
                else:
                    result = self._restore_profile(account_id, archive, mode)
                results[component] = result
                logger.info(
                    f"Restored {component.value}: {result.count} row(s), "
                    f"{result.deleted} deleted"
                )
            except Exception as e:
                self.db.rollback()
                if isinstance(e, ComponentRestoreFailed):
                    logger.error(f"Error restoring component {component.value}: {e}")
                else:
                    logger.error(f"Error restoring component {component.value}: {e}", exc_info=True)
                results[component] = RestoreResult(
                    component=component,
                    success=False,
                    error=str(e),
                )

        return MetadataRestoreOutcome(results=results, artwork_id_mapping=id_mapping)

    def _restore_artworks(
        self,
        account_id: str,
        archive: DecodedArchive,
        mode: RestoreMode,
    ):
        """
        Recreate artwork rows with fresh ids.

        Returns:
            Tuple of (RestoreResult, id mapping); the mapping lists ids in archive order
        """
        records = self._artwork_records(archive)
        repo = ArtworkRepository(self.db)

        removed_paths: List[str] = []
        deleted = 0
        if mode == RestoreMode.REPLACE:
            deleted = repo.count_by_account(account_id)
            removed_paths = repo.delete_by_account(account_id)

        mapping: Dict[str, str] = {}
        unmapped = 0
        for record in records:
            artwork = repo.create(
                account_id=account_id,
                title=record.title,
                description=record.description,
                medium=record.medium,
                dimensions=record.dimensions,
                year_created=record.year_created,
                price=record.price,
                tags=record.tags,
                status="published",
                featured=record.featured,
                sort_order=record.sort_order,
                created_at=record.created_at_datetime(),
            )
            if record.old_id:
                mapping[record.old_id] = artwork.id
            else:
                unmapped += 1

        self.db.commit()

        # Objects are removed only after the rows are gone for good
        for path in removed_paths:
            try:
                self.storage.delete_artwork_images(path)
            except (ImageStorageError, OSError) as e:
                logger.warning(f"Failed to delete image {path}: {e}")

        details: Dict[str, Any] = {"total": len(records), "mode": mode.value}
        if unmapped:
            details["warnings"] = [
                f"{unmapped} artwork(s) had no exported id; their images cannot be re-linked"
            ]

        return (
            RestoreResult(
                component=Component.ARTWORKS,
                success=True,
                count=len(records),
                deleted=deleted,
                details=details,
            ),
            mapping,
        )

    def _artwork_records(self, archive: DecodedArchive) -> List[ArtworkRecord]:
        present, raw = archive.component_entry(Component.ARTWORKS)
        if not present:
            raise ComponentRestoreFailed("artworks", "Backup lists artworks but has no art/artworks.json")
        if not isinstance(raw, list):
            raise ComponentRestoreFailed("artworks", "art/artworks.json must contain a list")

        records = []
        seen = set()
        for index, item in enumerate(raw):
            if not isinstance(item, dict):
                raise ComponentRestoreFailed("artworks", f"Artwork #{index} is not an object")
            try:
                record = ArtworkRecord.from_dict(item)
            except (TypeError, ValueError) as e:
                raise ComponentRestoreFailed("artworks", f"Artwork #{index} is invalid: {e}")
            if record.old_id:
                if record.old_id in seen:
                    raise ComponentRestoreFailed("artworks", f"Duplicate artwork id {record.old_id}")
                seen.add(record.old_id)
            records.append(record)
        return records

    def _component_object(self, archive: DecodedArchive, component: Component) -> Dict[str, Any]:
        present, raw = archive.component_entry(component)
        if not present:
            raise ComponentRestoreFailed(component.value, f"No {component.value} data in backup")
        if not isinstance(raw, dict):
            raise ComponentRestoreFailed(component.value, f"{component.value} data must be a JSON object")
        return {k: v for k, v in raw.items() if k not in OWNERSHIP_FIELDS}

    def _restore_settings(
        self,
        account_id: str,
        archive: DecodedArchive,
        mode: RestoreMode,
    ) -> RestoreResult:
        """Restore the settings object; add mode merges archived keys over live ones."""
        settings = self._component_object(archive, Component.SETTINGS)
        repo = SettingsRepository(self.db)

        deleted = 0
        if mode == RestoreMode.REPLACE:
            deleted = repo.delete(account_id)
        else:
            existing = repo.get(account_id)
            if existing is not None and existing.settings:
                settings = {**existing.settings, **settings}

        repo.upsert(account_id, settings)
        self.db.commit()

        return RestoreResult(
            component=Component.SETTINGS,
            success=True,
            count=1,
            deleted=deleted,
            details={"settings_count": len(settings)},
        )

    def _restore_profile(
        self,
        account_id: str,
        archive: DecodedArchive,
        mode: RestoreMode,
    ) -> RestoreResult:
        """Restore the profile record, re-uploading an archived avatar if present."""
        record = self._component_object(archive, Component.PROFILE)
        repo = ProfileRepository(self.db)
        warnings: List[str] = []

        avatar_restored = False
        avatar_url = None
        if record.get("avatar_type") == "uploaded":
            avatar = archive.avatar_entry()
            if avatar is not None:
                path, data = avatar
                extension = PurePosixPath(path).suffix.lstrip(".")
                try:
                    avatar_url = self.storage.store_avatar(account_id, data, extension)
                    record["avatar_url"] = avatar_url
                    avatar_restored = True
                except ImageStorageError as e:
                    logger.warning(f"Failed to restore avatar: {e}")
                    warnings.append(f"Failed to restore avatar: {e}")
            else:
                warnings.append("Profile uses an uploaded avatar but the backup has no avatar file")

        deleted = 0
        try:
            if mode == RestoreMode.REPLACE:
                deleted = repo.delete(account_id)
            else:
                existing = repo.get(account_id)
                if existing is not None and existing.record:
                    record = {**existing.record, **record}
            repo.upsert(account_id, record)
            self.db.commit()
        except Exception:
            if avatar_url:
                self._discard_avatar(avatar_url)
            raise

        details: Dict[str, Any] = {"avatar_restored": avatar_restored}
        if warnings:
            details["warnings"] = warnings
        return RestoreResult(
            component=Component.PROFILE,
            success=True,
            count=1,
            deleted=deleted,
            details=details,
        )

    def _discard_avatar(self, avatar_url: str) -> None:
        key = self.storage.key_from_url(avatar_url)
        if not key:
            return
        try:
            self.storage.delete(key)
        except ImageStorageError as e:
            logger.warning(f"Failed to remove unused avatar {key}: {e}")
