"""Exception taxonomy for the backup/restore pipeline."""

from typing import Optional


class BackupError(Exception):
    """Raised when a backup or restore operation fails."""
    pass


class InvalidSelectionError(BackupError):
    """Raised when the component selection or restore mode is invalid."""
    pass


class CorruptArchive(BackupError):
    """Archive is not a ZIP, or backup-metadata.json is missing or unparsable."""
    pass


class UnsupportedArchiveVersion(CorruptArchive):
    """Archive metadata declares a format version this engine cannot read."""
    pass


class ComponentRestoreFailed(BackupError):
    """One component's delete or insert failed; other components still proceed."""

    def __init__(self, component: str, message: str):
        self.component = component
        super().__init__(f"{component}: {message}")


class ImageUploadFailed(BackupError):
    """One image could not be stored or attached to its artwork."""

    def __init__(self, filename: str, message: str):
        self.filename = filename
        super().__init__(f"{filename}: {message}")


class UnmatchedImage(BackupError):
    """Image filename did not map to any artwork in the current restore."""

    def __init__(self, filename: str, old_id: Optional[str] = None):
        self.filename = filename
        self.old_id = old_id
        if old_id:
            message = f"No restored artwork for id {old_id} ({filename})"
        else:
            message = f"Cannot recover an artwork id from filename {filename}"
        super().__init__(message)


class ArchiveTooLarge(BackupError):
    """Archive, or its uncompressed content, exceeds the configured size limit."""
    pass


class RestoreCancelled(BackupError):
    """Restore was cancelled between two images; carries the partial report."""

    def __init__(self, report):
        self.report = report
        super().__init__("Restore cancelled by caller")
