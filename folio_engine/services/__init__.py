"""Services package."""

from .archive_codec import ArchiveCodec, DecodedArchive
from .backup_service import PortfolioBackupService
from .restore_service import MetadataRestoreService
from .image_restore import ImageRestoreService
from .restore_orchestrator import RestoreOrchestrator
from .image_storage import ImageStorageService, StoredImage

__all__ = [
    'ArchiveCodec',
    'DecodedArchive',
    'PortfolioBackupService',
    'MetadataRestoreService',
    'ImageRestoreService',
    'RestoreOrchestrator',
    'ImageStorageService',
    'StoredImage',
]
