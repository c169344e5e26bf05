"""Restore orchestrator: decode, restore metadata, then restore images."""

import logging
from typing import Callable, Iterable, Optional, Tuple, Union

from sqlalchemy.orm import Session

from folio_engine.config.models import BackupConfig
from folio_engine.services.account_resolver import AccountResolver
from folio_engine.services.archive_codec import ArchiveCodec, DecodedArchive
from folio_engine.services.backup_errors import RestoreCancelled
from folio_engine.services.backup_types import (
    Component,
    MetadataRestoreOutcome,
    RestoreMode,
    RestoreReport,
    parse_components,
    parse_restore_mode,
)
from folio_engine.services.image_restore import ImageRestoreService
from folio_engine.services.image_storage import ImageStorageService
from folio_engine.services.restore_service import MetadataRestoreService

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, float], None]

# Progress milestones (percent)
PROGRESS_METADATA_START = 10
PROGRESS_METADATA_DONE = 30
PROGRESS_IMAGES_EXTRACT = 40
PROGRESS_IMAGES_START = 50
PROGRESS_IMAGES_SPAN = 40
PROGRESS_DONE = 100


class RestoreOrchestrator:
    """
    Drives one restore: decode, metadata phase, image phase, combined report.

    Callers must not run two restores for the same account at once.
    """

    def __init__(
        self,
        db: Session,
        storage: ImageStorageService,
        backup_config: Optional[BackupConfig] = None,
        codec: Optional[ArchiveCodec] = None,
    ):
        self.db = db
        self.storage = storage
        self.backup_config = backup_config or BackupConfig()
        self.codec = codec or ArchiveCodec(
            max_archive_bytes=self.backup_config.max_archive_mb * 1024 * 1024
        )
        self.metadata_service = MetadataRestoreService(db, storage)
        self.image_service = ImageRestoreService.from_config(db, storage, self.backup_config)

    def restore_metadata(
        self,
        account_id: str,
        archive_bytes: bytes,
        components: Union[str, Iterable[str]],
        mode: Union[str, RestoreMode],
    ) -> Tuple[DecodedArchive, MetadataRestoreOutcome]:
        """
        First half of a split restore: decode and restore rows only.

        Raises:
            Unauthorized: Unknown account
            CorruptArchive: Archive unreadable or missing its metadata entry
            InvalidSelectionError: Bad component selection or mode
        """
        selected = parse_components(components)
        mode = parse_restore_mode(mode)
        AccountResolver(self.db).require_account(account_id)

        archive = self.codec.decode(archive_bytes)
        outcome = self.metadata_service.restore_metadata(account_id, archive, selected, mode)
        return archive, outcome

    def restore(
        self,
        account_id: str,
        archive_bytes: bytes,
        components: Union[str, Iterable[str]],
        mode: Union[str, RestoreMode],
        progress: Optional[ProgressCallback] = None,
        cancel_event=None,
    ) -> RestoreReport:
        """
        Restore a backup archive into an account.

        Args:
            account_id: Acting account; all created rows belong to it
            archive_bytes: ZIP archive produced by the backup service
            components: Components to restore
            mode: "add" or "replace"
            progress: Optional callback(message, percent)
            cancel_event: Optional object with is_set(); checked between images only

        Returns:
            RestoreReport. `success` is False if any component failed; image
            problems only add warnings.

        Raises:
            Unauthorized: Unknown account (nothing restored)
            CorruptArchive: Archive unreadable (nothing restored)
            RestoreCancelled: Cancelled between images; carries the partial report
        """
        selected = parse_components(components)
        mode = parse_restore_mode(mode)
        report = RestoreReport(mode=mode)

        def report_progress(message: str, percent: float) -> None:
            report.progress = percent
            logger.info(f"Restore progress {percent:.0f}%: {message}")
            if progress is not None:
                progress(message, percent)

        logger.info(f"Starting restore for account {account_id}")
        report_progress("Restoring metadata...", PROGRESS_METADATA_START)

        archive, outcome = self.restore_metadata(account_id, archive_bytes, selected, mode)
        report.backup_date = archive.metadata.created_at
        report.results = outcome.results
        report_progress("Metadata restored", PROGRESS_METADATA_DONE)

        artworks_result = outcome.results.get(Component.ARTWORKS)
        if (
            Component.ARTWORKS in selected
            and artworks_result is not None
            and artworks_result.success
            and outcome.artwork_id_mapping
        ):
            self._restore_images(account_id, archive, outcome, mode, report, report_progress, cancel_event)

        report_progress("Restore completed", PROGRESS_DONE)

        summary = ", ".join(
            f"{c.value}: {'Success' if r.success else 'Failed - ' + str(r.error)}"
            for c, r in report.results.items()
        )
        logger.info(
            f"Restore finished for account {account_id}: {summary}; "
            f"images {report.images_restored}/{len(report.images)}"
        )
        return report

    def _restore_images(
        self,
        account_id: str,
        archive: DecodedArchive,
        outcome: MetadataRestoreOutcome,
        mode: RestoreMode,
        report: RestoreReport,
        report_progress: ProgressCallback,
        cancel_event,
    ) -> None:
        report_progress("Extracting images from backup...", PROGRESS_IMAGES_EXTRACT)
        images = archive.image_entries()
        total = len(images)
        if total == 0:
            return

        report_progress(f"Restoring {total} images...", PROGRESS_IMAGES_START)
        results = self.image_service.restore_images(
            account_id, images, outcome.artwork_id_mapping, mode
        )
        for done, result in enumerate(results, start=1):
            report.images.append(result)
            report_progress(
                f"Restored {done}/{total} images",
                PROGRESS_IMAGES_START + (done / total) * PROGRESS_IMAGES_SPAN,
            )
            if cancel_event is not None and cancel_event.is_set() and done < total:
                logger.warning(f"Restore cancelled after {done}/{total} images")
                raise RestoreCancelled(report)
