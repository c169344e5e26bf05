"""
Object storage for artwork images and avatars.

Stores bytes under a local root directory and serves them from a public base
URL, so a stored key maps to exactly one retrievable URL. Artwork uploads also
produce display and thumbnail variants with Pillow.
"""

import io
import logging
import mimetypes
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

# Pillow format names by file extension
_PIL_FORMATS = {
    "jpg": "JPEG",
    "jpeg": "JPEG",
    "png": "PNG",
    "gif": "GIF",
    "webp": "WEBP",
}


class ImageStorageError(Exception):
    """Base exception for image storage errors."""
    pass


@dataclass
class StoredImage:
    """Locations of one artwork's stored image and its variants."""
    storage_path: str
    image_url: str
    thumbnail_url: str
    original_url: str

    def to_dict(self):
        return {
            "storage_path": self.storage_path,
            "image_url": self.image_url,
            "thumbnail_url": self.thumbnail_url,
            "original_url": self.original_url,
        }


class ImageStorageService:
    """
    Service for storing and managing image objects.

    Handles:
    - Writing and reading objects by key
    - Creating display and thumbnail variants
    - Mapping keys to public URLs and back
    - Deleting an artwork's objects
    """

    def __init__(
        self,
        root: Path = Path("data/objects"),
        public_base_url: str = "http://localhost:8080/api/images",
        thumbnail_size: int = 400,
        display_size: int = 1600,
        create_variants: bool = True,
    ):
        """
        Initialize image storage service.

        Args:
            root: Directory holding all objects
            public_base_url: URL prefix under which `root` is served
            thumbnail_size: Maximum dimension for thumbnails (pixels)
            display_size: Maximum dimension for display images (pixels)
            create_variants: Whether to generate display/thumbnail variants
        """
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")
        self.thumbnail_size = thumbnail_size
        self.display_size = display_size
        self.create_variants = create_variants

        self.root.mkdir(parents=True, exist_ok=True)

        logger.info(
            f"Image storage initialized: {self.root} -> {self.public_base_url} "
            f"(thumbnail: {thumbnail_size}px, display: {display_size}px)"
        )

    @classmethod
    def from_config(cls, storage_config) -> "ImageStorageService":
        return cls(
            root=storage_config.root,
            public_base_url=storage_config.public_base_url,
            thumbnail_size=storage_config.thumbnail_size,
            display_size=storage_config.display_size,
            create_variants=storage_config.create_variants,
        )

    def _object_path(self, key: str) -> Path:
        parts = PurePosixPath(key).parts
        if not key or PurePosixPath(key).is_absolute() or ".." in parts:
            raise ImageStorageError(f"Invalid object key: {key!r}")
        return self.root.joinpath(*parts)

    def url_for(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"

    def key_from_url(self, url: Optional[str]) -> Optional[str]:
        """Return the object key for a URL served by this store, else None."""
        prefix = f"{self.public_base_url}/"
        if url and url.startswith(prefix):
            return url[len(prefix):]
        return None

    def put(self, key: str, data: bytes, content_type: Optional[str] = None) -> str:
        """
        Store bytes under a key.

        Returns:
            Public URL of the stored object

        Raises:
            ImageStorageError: Failed to write the object
        """
        path = self._object_path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "wb") as f:
                f.write(data)
        except OSError as e:
            logger.error(f"Failed to store object {key}: {e}")
            raise ImageStorageError(f"Failed to store {key}: {e}")

        logger.debug(
            f"Stored object {key} ({len(data)} bytes, "
            f"{content_type or mimetypes.guess_type(key)[0] or 'application/octet-stream'})"
        )
        return self.url_for(key)

    def get(self, key: str) -> Optional[bytes]:
        """Read an object, or None if it does not exist."""
        path = self._object_path(key)
        if not path.is_file():
            return None
        try:
            with open(path, "rb") as f:
                return f.read()
        except OSError as e:
            raise ImageStorageError(f"Failed to read {key}: {e}")

    def delete(self, key: str) -> bool:
        """Delete an object. A missing object counts as deleted."""
        path = self._object_path(key)
        try:
            if path.is_dir():
                shutil.rmtree(path)
            elif path.exists():
                path.unlink()
            else:
                logger.debug(f"Object already gone (continuing): {key}")
        except OSError as e:
            raise ImageStorageError(f"Failed to delete {key}: {e}")
        return True

    def store_artwork_image(
        self,
        account_id: str,
        artwork_id: str,
        data: bytes,
        extension: str = "jpg",
    ) -> StoredImage:
        """
        Upload an artwork's original plus display and thumbnail variants.

        Bytes Pillow cannot turn into variants are stored as-is and reused for every variant.

        Returns:
            StoredImage with the folder key and the three URLs
        """
        extension = (extension or "jpg").lower().lstrip(".")
        folder = f"artworks/{account_id}/{artwork_id}"
        content_type = mimetypes.guess_type(f"x.{extension}")[0]

        original_url = self.put(f"{folder}/original.{extension}", data, content_type)
        image_url = original_url
        thumbnail_url = original_url

        if self.create_variants:
            variants = self._make_variants(data, extension)
            if variants is not None:
                display_bytes, thumb_bytes = variants
                image_url = self.put(f"{folder}/display.{extension}", display_bytes, content_type)
                thumbnail_url = self.put(f"{folder}/thumb.{extension}", thumb_bytes, content_type)
            else:
                logger.info(f"Using fallback for artwork {artwork_id}: stored original as display variant")

        return StoredImage(
            storage_path=folder,
            image_url=image_url,
            thumbnail_url=thumbnail_url,
            original_url=original_url,
        )

    def delete_artwork_images(self, storage_path: str) -> bool:
        """Remove an artwork's object folder (or single object)."""
        return self.delete(storage_path)

    def store_avatar(self, account_id: str, data: bytes, extension: str) -> str:
        """
        Upload a restored avatar and return its URL.

        Every upload gets a fresh key so an earlier avatar object is never overwritten.
        """
        extension = (extension or "png").lower().lstrip(".")
        key = f"avatars/{account_id}/restored-{uuid.uuid4().hex}.{extension}"
        return self.put(key, data, mimetypes.guess_type(key)[0])

    def _make_variants(self, data: bytes, extension: str) -> Optional[Tuple[bytes, bytes]]:
        """Return (display, thumbnail) bytes, or None if variants cannot be produced."""
        try:
            image = Image.open(io.BytesIO(data))
            image.load()
            fmt = _PIL_FORMATS.get(extension) or image.format or "PNG"
            display = self._resize(image, self.display_size)
            thumbnail = self._resize(image, self.thumbnail_size)
            return self._encode(display, fmt), self._encode(thumbnail, fmt)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError, KeyError) as e:
            logger.warning(f"Could not create image variants: {e}")
            return None

    def _resize(self, image: Image.Image, max_dimension: int) -> Image.Image:
        # Copy so the source stays untouched; thumbnail() keeps aspect ratio
        resized = image.copy()
        resized.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)
        return resized

    def _encode(self, image: Image.Image, fmt: str) -> bytes:
        if fmt == "JPEG" and image.mode not in ("RGB", "L"):
            image = image.convert("RGB")
        buffer = io.BytesIO()
        image.save(buffer, format=fmt)
        return buffer.getvalue()
