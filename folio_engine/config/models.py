"""Pydantic models for configuration validation."""

from pathlib import Path
from typing import List, Literal
from pydantic import BaseModel, Field, field_validator, ConfigDict


class PathsConfig(BaseModel):
    """File path configuration."""

    data: Path = Path("data")

    @field_validator('data')
    @classmethod
    def validate_path(cls, v: Path) -> Path:
        """Ensure paths are cross-platform."""
        return Path(v)


class StorageConfig(BaseModel):
    """Object storage configuration for artwork images and avatars."""

    root: Path = Path("data/objects")
    public_base_url: str = "http://localhost:8080/api/images"
    thumbnail_size: int = Field(default=400, gt=0, le=4096)
    display_size: int = Field(default=1600, gt=0, le=8192)
    create_variants: bool = Field(
        default=True,
        description="Generate display and thumbnail variants when an image is stored"
    )

    @field_validator('public_base_url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Ensure URL is properly formatted."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError('public_base_url must start with http:// or https://')
        return v.rstrip('/')


class BackupConfig(BaseModel):
    """Backup archive and restore policy configuration."""

    max_archive_mb: int = Field(default=500, gt=0)
    max_image_mb: int = Field(default=10, gt=0)
    allowed_image_extensions: List[str] = Field(
        default_factory=lambda: ["jpg", "jpeg", "png", "gif", "webp"]
    )
    default_restore_mode: Literal["add", "replace"] = "replace"
    default_components: List[Literal["artworks", "settings", "profile"]] = Field(
        default_factory=lambda: ["artworks", "settings", "profile"]
    )

    @field_validator('allowed_image_extensions')
    @classmethod
    def normalize_extensions(cls, v: List[str]) -> List[str]:
        """Store extensions lowercase without a leading dot."""
        return [ext.lower().lstrip('.') for ext in v]


class SystemConfig(BaseModel):
    """Top-level system configuration."""

    model_config = ConfigDict(extra='ignore')

    paths: PathsConfig = Field(default_factory=PathsConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    backup: BackupConfig = Field(default_factory=BackupConfig)
    debug: bool = False
    api_host: str = "localhost"
    api_port: int = Field(default=8080, gt=0, le=65535)
