"""Configuration loading and validation."""

from .models import (
    SystemConfig,
    PathsConfig,
    StorageConfig,
    BackupConfig,
)
from .loader import ConfigLoader, ConfigLoadError, ConfigValidationError

__all__ = [
    "SystemConfig",
    "PathsConfig",
    "StorageConfig",
    "BackupConfig",
    "ConfigLoader",
    "ConfigLoadError",
    "ConfigValidationError",
]
