"""
Backup archive codec.

Reads and writes the ZIP container that holds one export:

    backup-metadata.json                       archive-level metadata (mandatory)
    backup-results.json                        export summary (informational)
    art/artworks.json                          list of artwork records
    art/images/<old_id>-<sanitized_title>.<ext> raw image bytes
    settings/settings.json                     site settings object
    profile/profile.json                       profile record
    profile/avatar.<ext>                       uploaded avatar bytes

Entries ending in `.json` are JSON values; every other entry is raw bytes.
"""

import io
import json
import logging
import re
import zipfile
import zlib
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any, Dict, List, Mapping, Optional, Tuple

from folio_engine.services.backup_errors import (
    ArchiveTooLarge,
    CorruptArchive,
    UnsupportedArchiveVersion,
)
from folio_engine.services.backup_types import BackupMetadata, Component

logger = logging.getLogger(__name__)

METADATA_PATH = "backup-metadata.json"
RESULTS_PATH = "backup-results.json"
ARTWORKS_PATH = "art/artworks.json"
IMAGES_PREFIX = "art/images/"
SETTINGS_PATH = "settings/settings.json"
LEGACY_SETTINGS_PATH = "site/settings.json"
PROFILE_PATH = "profile/profile.json"
AVATAR_PREFIX = "profile/avatar."

COMPONENT_PATHS = {
    Component.ARTWORKS: ARTWORKS_PATH,
    Component.SETTINGS: SETTINGS_PATH,
    Component.PROFILE: PROFILE_PATH,
}

SUPPORTED_ARCHIVE_VERSIONS = [1]

# Fixed entry timestamp so identical inputs encode to identical bytes
_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)

_UUID_RE = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)
_TITLE_UNSAFE_RE = re.compile(r"[^a-zA-Z0-9]")


def sanitize_title(title: str) -> str:
    """Replace every non-alphanumeric character with an underscore."""
    return _TITLE_UNSAFE_RE.sub("_", title or "")


def image_entry_path(old_id: str, title: str, extension: str = "jpg") -> str:
    """Build the archive path for an artwork image."""
    extension = (extension or "jpg").lower().lstrip(".")
    return f"{IMAGES_PREFIX}{old_id}-{sanitize_title(title)}.{extension}"


def recover_old_id(filename: str) -> Optional[str]:
    """
    Recover the exported artwork id from an image filename.

    Takes the first five dash-separated tokens of the stem and accepts them
    only if they form a UUID. Sanitized titles never contain dashes, so the
    id is always the first five tokens for archives written by this codec.

    Returns:
        The id as written in the filename, or None when it cannot be recovered
    """
    name = PurePosixPath(filename).name
    stem = name.rsplit(".", 1)[0] if "." in name else name
    tokens = stem.split("-")
    if len(tokens) < 5:
        return None
    candidate = "-".join(tokens[:5])
    if not _UUID_RE.match(candidate):
        return None
    return candidate


def _is_safe_entry_name(name: str) -> bool:
    path = PurePosixPath(name)
    return bool(name) and not path.is_absolute() and ".." not in path.parts and "\\" not in name


@dataclass
class DecodedArchive:
    """JSON and binary entries of an archive, keyed by path."""
    metadata: BackupMetadata
    json_entries: Dict[str, Any] = field(default_factory=dict)
    binary_entries: Dict[str, bytes] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    @property
    def components(self) -> List[Component]:
        """Components the archive claims to contain, ignoring unknown names."""
        found = []
        for name in self.metadata.components:
            try:
                found.append(Component(name))
            except ValueError:
                continue
        return found

    def entries(self) -> Dict[str, Any]:
        """All entries in one mapping, in archive order (JSON entries first)."""
        merged: Dict[str, Any] = dict(self.json_entries)
        merged.update(self.binary_entries)
        return merged

    def component_entry(self, component: Component) -> Tuple[bool, Any]:
        """
        Return (present, value) for a component's JSON entry.

        Settings fall back to the path used by the first export format.
        """
        path = COMPONENT_PATHS[component]
        if path in self.json_entries:
            return True, self.json_entries[path]
        if component == Component.SETTINGS and LEGACY_SETTINGS_PATH in self.json_entries:
            return True, self.json_entries[LEGACY_SETTINGS_PATH]
        return False, None

    def image_entries(self) -> Dict[str, bytes]:
        """Binary entries under art/images/, in archive order."""
        return {
            path: data
            for path, data in self.binary_entries.items()
            if path.startswith(IMAGES_PREFIX) and len(path) > len(IMAGES_PREFIX)
        }

    def avatar_entry(self) -> Optional[Tuple[str, bytes]]:
        for path, data in self.binary_entries.items():
            if path.startswith(AVATAR_PREFIX):
                return path, data
        return None


class ArchiveCodec:
    """Encode entry mappings to ZIP bytes and decode them back."""

    def __init__(self, max_archive_bytes: Optional[int] = None):
        """
        Args:
            max_archive_bytes: Upper bound for both the compressed archive and
                its total uncompressed content; None disables the check
        """
        self.max_archive_bytes = max_archive_bytes

    def encode(self, entries: Mapping[str, Any]) -> bytes:
        """
        Write entries into a ZIP archive.

        Args:
            entries: path -> JSON-serializable value (for `.json` paths) or bytes

        Returns:
            Archive bytes; identical inputs always produce identical bytes
        """
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as zipf:
            for path, value in entries.items():
                if not _is_safe_entry_name(path):
                    raise ValueError(f"Unsafe archive entry path: {path!r}")

                info = zipfile.ZipInfo(path, date_time=_ZIP_EPOCH)
                info.external_attr = 0o644 << 16
                if path.endswith(".json"):
                    payload = json.dumps(value, indent=2, ensure_ascii=False).encode("utf-8")
                    info.compress_type = zipfile.ZIP_DEFLATED
                elif isinstance(value, (bytes, bytearray, memoryview)):
                    payload = bytes(value)
                    # Image formats are already compressed
                    info.compress_type = zipfile.ZIP_STORED
                else:
                    raise TypeError(
                        f"Entry {path} must be bytes (got {type(value).__name__})"
                    )
                zipf.writestr(info, payload)

        data = buffer.getvalue()
        logger.debug(f"Encoded archive with {len(entries)} entries ({len(data)} bytes)")
        return data

    def decode(self, data: bytes) -> DecodedArchive:
        """
        Read an archive produced by `encode`.

        Extra or missing optional entries are tolerated and reported in
        `DecodedArchive.warnings`.

        Raises:
            CorruptArchive: Not a ZIP, or backup-metadata.json absent/unparsable
            UnsupportedArchiveVersion: Metadata version is not supported
            ArchiveTooLarge: Size limit exceeded
        """
        if self.max_archive_bytes is not None and len(data) > self.max_archive_bytes:
            raise ArchiveTooLarge(
                f"Backup file is {len(data)} bytes; limit is {self.max_archive_bytes}"
            )

        try:
            zipf = zipfile.ZipFile(io.BytesIO(data), "r")
        except (zipfile.BadZipFile, ValueError) as e:
            raise CorruptArchive(f"Invalid backup file (not a valid ZIP): {e}")

        with zipf:
            members = [info for info in zipf.infolist() if not info.is_dir()]

            if self.max_archive_bytes is not None:
                total = sum(info.file_size for info in members)
                if total > self.max_archive_bytes:
                    raise ArchiveTooLarge(
                        f"Backup content expands to {total} bytes; limit is {self.max_archive_bytes}"
                    )

            names = {info.filename for info in members}
            if METADATA_PATH not in names:
                raise CorruptArchive("No backup metadata found in file")

            metadata_raw = self._read_metadata(zipf)
            try:
                metadata = BackupMetadata.from_dict(metadata_raw)
            except ValueError as e:
                raise CorruptArchive(f"Invalid {METADATA_PATH}: {e}")

            if metadata.version not in SUPPORTED_ARCHIVE_VERSIONS:
                raise UnsupportedArchiveVersion(
                    f"Unsupported backup version {metadata.version}. "
                    f"Supported versions: {SUPPORTED_ARCHIVE_VERSIONS}"
                )

            decoded = DecodedArchive(metadata=metadata)
            decoded.json_entries[METADATA_PATH] = metadata_raw

            for name in metadata.components:
                try:
                    Component(name)
                except ValueError:
                    decoded.warnings.append(f"Ignoring unknown component in metadata: {name}")

            for info in members:
                name = info.filename
                if name == METADATA_PATH:
                    continue
                if not _is_safe_entry_name(name):
                    decoded.warnings.append(f"Skipped unsafe entry path: {name}")
                    continue
                try:
                    payload = zipf.read(info)
                except (zipfile.BadZipFile, zlib.error, OSError, RuntimeError) as e:
                    decoded.warnings.append(f"Could not read entry {name}: {e}")
                    continue

                if name.endswith(".json"):
                    try:
                        decoded.json_entries[name] = json.loads(payload.decode("utf-8"))
                    except (UnicodeDecodeError, json.JSONDecodeError) as e:
                        decoded.warnings.append(f"Skipped unparsable JSON entry {name}: {e}")
                else:
                    decoded.binary_entries[name] = payload

        for warning in decoded.warnings:
            logger.warning(f"Archive decode: {warning}")

        logger.debug(
            f"Decoded archive v{metadata.version}: {len(decoded.json_entries)} JSON entries, "
            f"{len(decoded.binary_entries)} binary entries"
        )
        return decoded

    def _read_metadata(self, zipf: zipfile.ZipFile) -> Dict[str, Any]:
        try:
            raw = json.loads(zipf.read(METADATA_PATH).decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CorruptArchive(f"Invalid {METADATA_PATH}: {e}")
        except (zipfile.BadZipFile, zlib.error, OSError, RuntimeError) as e:
            raise CorruptArchive(f"Could not read {METADATA_PATH}: {e}")

        if not isinstance(raw, dict):
            raise CorruptArchive(f"{METADATA_PATH} must contain a JSON object")
        return raw
