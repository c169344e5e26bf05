"""Shared types for the backup/restore pipeline: components, modes, records and results."""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Union

from folio_engine.services.backup_errors import InvalidSelectionError


class Component(str, enum.Enum):
    """Named categories of exportable/restorable data."""
    ARTWORKS = "artworks"
    SETTINGS = "settings"
    PROFILE = "profile"


class RestoreMode(str, enum.Enum):
    """Whether existing live rows survive a restore."""
    ADD = "add"          # keep live rows, insert archived rows as new
    REPLACE = "replace"  # delete live rows of selected components first


# Artworks first: the image phase needs its id mapping
RESTORE_ORDER = (Component.ARTWORKS, Component.SETTINGS, Component.PROFILE)

# Title given to archived artworks whose title is missing or blank
UNTITLED = "Untitled"

BACKUP_COMPONENTS = {
    Component.ARTWORKS: {
        "name": "Artworks",
        "description": "All artwork images and metadata",
    },
    Component.SETTINGS: {
        "name": "Site Settings",
        "description": "Site configuration and preferences",
    },
    Component.PROFILE: {
        "name": "Profile",
        "description": "Profile information and avatar",
    },
}


def parse_components(value: Union[str, Iterable[str], None]) -> List[Component]:
    """
    Parse a component selection into an ordered, de-duplicated list.

    Accepts a comma-separated string or any iterable of names. The result is in
    RESTORE_ORDER regardless of input order.

    Raises:
        InvalidSelectionError: On unknown names or an empty selection
    """
    if value is None:
        names: List[str] = []
    elif isinstance(value, str):
        names = [part.strip() for part in value.split(",") if part.strip()]
    else:
        names = [str(getattr(part, "value", part)).strip() for part in value]

    selected = set()
    for name in names:
        try:
            selected.add(Component(name.lower()))
        except ValueError:
            raise InvalidSelectionError(
                f"Unknown component '{name}'. Valid components: "
                f"{', '.join(c.value for c in RESTORE_ORDER)}"
            )

    if not selected:
        raise InvalidSelectionError("No components selected")

    return [c for c in RESTORE_ORDER if c in selected]


def parse_restore_mode(value: Union[str, RestoreMode, None], default: str = "add") -> RestoreMode:
    """Parse a restore mode name, raising InvalidSelectionError for unknown values."""
    if isinstance(value, RestoreMode):
        return value
    raw = (value or default).strip().lower()
    try:
        return RestoreMode(raw)
    except ValueError:
        raise InvalidSelectionError(f"Unknown restore mode '{value}'. Use 'add' or 'replace'")


@dataclass
class BackupMetadata:
    """Archive-level record stored as backup-metadata.json."""
    version: int
    created_at: str
    components: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "created_at": self.created_at,
            "components": list(self.components),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BackupMetadata":
        # Early archives wrote export_date and a string version ("1.0")
        raw_version = data.get("version", 1)
        try:
            version = int(float(raw_version))
        except (TypeError, ValueError):
            raise ValueError(f"version is not a number: {raw_version!r}")
        components = data.get("components")
        if not isinstance(components, list) or not all(isinstance(c, str) for c in components):
            raise ValueError("components must be a list of strings")
        created_at = data.get("created_at") or data.get("export_date") or ""
        return cls(version=version, created_at=str(created_at), components=components)


@dataclass
class ArtworkRecord:
    """One exported artwork as stored in art/artworks.json."""
    old_id: Optional[str]
    title: str
    description: Optional[str] = None
    medium: Optional[str] = None
    dimensions: Optional[str] = None
    year_created: Optional[int] = None
    price: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    image_filename: Optional[str] = None
    featured: bool = False
    sort_order: int = 0
    created_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "old_id": self.old_id,
            "title": self.title,
            "description": self.description,
            "medium": self.medium,
            "dimensions": self.dimensions,
            "year_created": self.year_created,
            "price": self.price,
            "tags": list(self.tags),
            "image_filename": self.image_filename,
            "featured": self.featured,
            "sort_order": self.sort_order,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ArtworkRecord":
        """
        Build a record from archived JSON.

        Ownership fields (account_id, user_id) are ignored. Archives written by
        the first export format used `id` instead of `old_id`. A missing or
        blank title restores as "Untitled".
        """
        title = data.get("title")
        if title is not None and not isinstance(title, str):
            title = str(title)
        if not title or not title.strip():
            title = UNTITLED

        old_id = data.get("old_id", data.get("id"))
        tags = data.get("tags") or []
        if isinstance(tags, str):
            tags = [t.strip() for t in tags.split(",") if t.strip()]

        year = data.get("year_created")
        if year in ("", None):
            year = None
        else:
            year = int(year)

        price = data.get("price")
        return cls(
            old_id=str(old_id) if old_id is not None else None,
            title=title,
            description=data.get("description"),
            medium=data.get("medium"),
            dimensions=data.get("dimensions"),
            year_created=year,
            price=str(price) if price is not None else None,
            tags=[str(t) for t in tags],
            image_filename=data.get("image_filename"),
            featured=bool(data.get("featured", False)),
            sort_order=int(data.get("sort_order") or 0),
            created_at=data.get("created_at"),
        )

    def created_at_datetime(self) -> Optional[datetime]:
        """Parse created_at, returning None when absent or unparseable."""
        if not self.created_at:
            return None
        try:
            parsed = datetime.fromisoformat(str(self.created_at).replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed.replace(tzinfo=None)


@dataclass
class RestoreResult:
    """Outcome of restoring one component."""
    component: Component
    success: bool
    count: int = 0
    deleted: int = 0
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "success": self.success,
            "count": self.count,
            "deleted": self.deleted,
        }
        if self.error:
            data["error"] = self.error
        data.update(self.details)
        return data


@dataclass
class ImageRestoreResult:
    """Outcome of restoring one archived image."""
    filename: str
    matched: bool
    success: bool
    old_id: Optional[str] = None
    new_id: Optional[str] = None
    image_url: Optional[str] = None
    error: Optional[str] = None
    warning: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filename": self.filename,
            "matched": self.matched,
            "success": self.success,
            "old_id": self.old_id,
            "new_id": self.new_id,
            "image_url": self.image_url,
            "error": self.error,
            "warning": self.warning,
        }


@dataclass
class MetadataRestoreOutcome:
    """Per-component results plus the artwork id mapping for the image phase."""
    results: Dict[Component, RestoreResult]
    artwork_id_mapping: Dict[str, str]


@dataclass
class RestoreReport:
    """Combined outcome of one restore operation."""
    results: Dict[Component, RestoreResult] = field(default_factory=dict)
    images: List[ImageRestoreResult] = field(default_factory=list)
    progress: float = 0.0
    backup_date: Optional[str] = None
    mode: Optional[RestoreMode] = None

    @property
    def success(self) -> bool:
        """True when every selected component restored; image problems are warnings."""
        return all(result.success for result in self.results.values())

    @property
    def warnings(self) -> List[str]:
        messages = []
        for image in self.images:
            if not image.matched and image.warning:
                messages.append(image.warning)
            elif not image.success and image.error:
                messages.append(image.error)
        for result in self.results.values():
            for warning in result.details.get("warnings", []):
                messages.append(warning)
        return messages

    @property
    def images_restored(self) -> int:
        return sum(1 for image in self.images if image.success)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "has_warnings": bool(self.warnings),
            "mode": self.mode.value if self.mode else None,
            "backup_date": self.backup_date,
            "progress": self.progress,
            "results": {c.value: r.to_dict() for c, r in self.results.items()},
            "images": [image.to_dict() for image in self.images],
            "images_restored": self.images_restored,
            "images_total": len(self.images),
            "warnings": self.warnings,
        }


@dataclass
class BackupArchive:
    """A built archive plus what went into it."""
    data: bytes
    filename: str
    metadata: BackupMetadata
    results: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
