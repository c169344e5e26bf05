"""Image restore: place archived artwork images onto newly created artwork rows."""

import logging
from pathlib import PurePosixPath
from typing import Iterator, List, Mapping, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from folio_engine.repositories import ArtworkRepository
from folio_engine.services.archive_codec import recover_old_id
from folio_engine.services.backup_errors import ImageUploadFailed, UnmatchedImage
from folio_engine.services.backup_types import ImageRestoreResult, RestoreMode, parse_restore_mode
from folio_engine.services.image_storage import ImageStorageService, ImageStorageError

logger = logging.getLogger(__name__)


class ImageRestoreService:
    """
    Uploads archived images one at a time and attaches them to artworks.

    Only one image's bytes are processed at a time, and one image's failure
    never stops the rest.
    """

    def __init__(
        self,
        db: Session,
        storage: ImageStorageService,
        allowed_extensions: Optional[List[str]] = None,
        max_image_bytes: Optional[int] = None,
    ):
        """
        Args:
            db: Database session
            storage: Object store to upload into
            allowed_extensions: Accepted file extensions (lowercase, no dot); None accepts all
            max_image_bytes: Largest accepted image; None disables the check
        """
        self.db = db
        self.storage = storage
        self.allowed_extensions = allowed_extensions
        self.max_image_bytes = max_image_bytes

    @classmethod
    def from_config(cls, db: Session, storage: ImageStorageService, backup_config) -> "ImageRestoreService":
        return cls(
            db=db,
            storage=storage,
            allowed_extensions=backup_config.allowed_image_extensions,
            max_image_bytes=backup_config.max_image_mb * 1024 * 1024,
        )

    def restore_images(
        self,
        account_id: str,
        images: Mapping[str, bytes],
        id_mapping: Mapping[str, str],
        mode: Union[str, RestoreMode] = RestoreMode.ADD,
    ) -> Iterator[ImageRestoreResult]:
        """
        Lazily restore archived images, yielding one result per image.

        The id mapping must be complete before the first item is pulled; it is
        produced by the metadata phase.

        Args:
            account_id: Acting account
            images: Archive path -> image bytes (entries under art/images/)
            id_mapping: Exported artwork id -> newly created artwork id
            mode: Restore mode of the surrounding operation

        Yields:
            ImageRestoreResult for each image, in archive order
        """
        mode = parse_restore_mode(mode)
        logger.info(
            f"Restoring {len(images)} image(s) for account {account_id} "
            f"({len(id_mapping)} mapped artworks, mode={mode.value})"
        )

        for path, data in images.items():
            filename = PurePosixPath(path).name
            old_id = recover_old_id(filename)

            if old_id is None:
                warning = UnmatchedImage(filename)
                logger.warning(str(warning))
                yield ImageRestoreResult(
                    filename=filename, matched=False, success=False, warning=str(warning)
                )
                continue

            new_id = id_mapping.get(old_id)
            if new_id is None:
                warning = UnmatchedImage(filename, old_id)
                logger.warning(str(warning))
                yield ImageRestoreResult(
                    filename=filename, matched=False, success=False,
                    old_id=old_id, warning=str(warning)
                )
                continue

            yield self.restore_image(account_id, new_id, filename, data)

    def restore_image(
        self,
        account_id: str,
        artwork_id: str,
        filename: str,
        data: bytes,
    ) -> ImageRestoreResult:
        """
        Upload one image and attach it to an artwork owned by `account_id`.

        Returns:
            ImageRestoreResult; failures are recorded, never raised
        """
        old_id = recover_old_id(filename)
        try:
            stored = self._place_image(account_id, artwork_id, filename, data)
        except ImageUploadFailed as e:
            self.db.rollback()
            logger.error(f"Failed to restore image for artwork {artwork_id}: {e}")
            return ImageRestoreResult(
                filename=filename, matched=True, success=False,
                old_id=old_id, new_id=artwork_id, error=str(e)
            )
        except Exception as e:
            self.db.rollback()
            logger.error(f"Unexpected error restoring image {filename} for artwork {artwork_id}: {e}", exc_info=True)
            return ImageRestoreResult(
                filename=filename, matched=True, success=False,
                old_id=old_id, new_id=artwork_id, error=f"Failed to restore image: {e}"
            )

        logger.debug(f"Restored image {filename} -> artwork {artwork_id}")
        return ImageRestoreResult(
            filename=filename, matched=True, success=True,
            old_id=old_id, new_id=artwork_id, image_url=stored.image_url
        )

    def _place_image(self, account_id: str, artwork_id: str, filename: str, data: bytes):
        extension = PurePosixPath(filename).suffix.lstrip(".").lower()
        if not extension:
            raise ImageUploadFailed(filename, "File has no extension")
        if self.allowed_extensions is not None and extension not in self.allowed_extensions:
            raise ImageUploadFailed(
                filename,
                f"Invalid file type .{extension}. Allowed: {', '.join(self.allowed_extensions)}"
            )
        if not data:
            raise ImageUploadFailed(filename, "Image is empty")
        if self.max_image_bytes is not None and len(data) > self.max_image_bytes:
            raise ImageUploadFailed(
                filename,
                f"File too large ({len(data)} bytes). Maximum is {self.max_image_bytes} bytes"
            )

        repo = ArtworkRepository(self.db)
        try:
            artwork = repo.get_for_account(artwork_id, account_id)
        except SQLAlchemyError as e:
            raise ImageUploadFailed(filename, f"Could not load artwork {artwork_id}: {e}")
        if artwork is None:
            raise ImageUploadFailed(filename, f"Artwork {artwork_id} not found for this account")

        try:
            stored = self.storage.store_artwork_image(account_id, artwork_id, data, extension)
        except ImageStorageError as e:
            raise ImageUploadFailed(filename, str(e))

        try:
            repo.attach_image(artwork, stored.to_dict())
            self.db.commit()
        except SQLAlchemyError as e:
            # Row update failed; drop the objects we just wrote
            try:
                self.storage.delete_artwork_images(stored.storage_path)
            except ImageStorageError:
                logger.debug(f"Could not clean up {stored.storage_path}")
            raise ImageUploadFailed(filename, f"Failed to attach image: {e}")

        return stored
