"""
ShutterBox Backend — File Storage Service
===========================================

What:  Validates uploaded photo bytes and stores them on disk under
       `<storage_root>/<location>/<shortcode>`.
Who:   Image upload and avatar routes (store), the /files route (serve).
When:  Before analysis and before create_image; a failed persistence step
       removes the stored file again via cleanup_file().

Validation order (cheapest first):
    1. Non-empty body
    2. Size against settings.max_file_size
    3. Pillow decodes the header and reports JPEG or PNG

Storage keys:
    Files are addressed by (location, shortcode). Locations come from a
    fixed set and shortcodes are server-generated URL-safe tokens, so no
    client-supplied text ever reaches a filesystem path.
"""

import io
import logging
import os
import re
from pathlib import Path
from typing import Optional

import aiofiles
from PIL import Image, UnidentifiedImageError

from shutterbox.config import settings
from shutterbox.exceptions import FileStorageError, NotFoundError, ValidationError
from shutterbox.services.sources import AVATAR_LOCATION, CONTENT_LOCATION

logger = logging.getLogger(__name__)

# Pillow format name → response media type
ALLOWED_FORMATS = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
}

LOCATIONS = {CONTENT_LOCATION, AVATAR_LOCATION}

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


class FileService:
    """
    Stores and serves photo files.

    Layout:
        storage/
        ├── content/
        │   └── Xy3_a9Qk0bM
        └── avatars/
            └── 7GfP2mZrLwE
    """

    def __init__(self, storage_root: Optional[str] = None):
        """
        Args:
            storage_root: Override the configured storage path (used in tests).
        """
        self.storage_root = Path(storage_root or settings.storage_root).resolve()
        self.storage_root.mkdir(parents=True, exist_ok=True)
        logger.info("FileService initialized with storage_root=%s", self.storage_root)

    def validate_size(self, content: bytes) -> None:
        if not content:
            raise ValidationError(message="Uploaded file is empty", field="file")

        if len(content) > settings.max_file_size:
            max_mb = settings.max_file_size / (1024 * 1024)
            raise ValidationError(
                message=f"File size ({len(content) / (1024 * 1024):.1f}MB) exceeds maximum of {max_mb:.0f}MB.",
                field="file",
                context={"max_size_mb": max_mb, "actual_size": len(content)},
            )

    def validate_format(self, content: bytes) -> str:
        """
        Decode the image header with Pillow and return the media type.

        Raises:
            ValidationError: not an image, or not JPEG/PNG
        """
        try:
            with Image.open(io.BytesIO(content)) as img:
                fmt = img.format
                img.verify()
        except (UnidentifiedImageError, OSError, SyntaxError) as e:
            raise ValidationError(
                message="The file must be a valid image (PNG or JPEG).",
                field="file",
                context={"error": str(e)},
            ) from e

        if fmt not in ALLOWED_FORMATS:
            raise ValidationError(
                message=f"Image format '{fmt}' is not supported. The file must be PNG or JPEG.",
                field="file",
                context={"detected_format": fmt, "allowed": list(ALLOWED_FORMATS)},
            )
        return ALLOWED_FORMATS[fmt]

    def resolve_path(self, location: str, key: str) -> Path:
        """Absolute path for a stored file. Rejects unknown locations and malformed keys."""
        if location not in LOCATIONS or not _KEY_PATTERN.match(key):
            raise NotFoundError(resource="file", resource_id=f"{location}/{key}")
        return self.storage_root / location / key

    async def store_file(self, content: bytes, location: str, key: str) -> Path:
        path = self.resolve_path(location, key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to store file at %s: %s", path, e)
            raise FileStorageError(
                message="Failed to save uploaded image. Please try again.",
                context={"path": str(path), "os_error": str(e)},
            ) from e

        logger.info("File stored: %s/%s (%d bytes)", location, key, len(content))
        return path

    async def validate_and_store(self, content: bytes, location: str, key: str) -> Path:
        self.validate_size(content)
        self.validate_format(content)
        return await self.store_file(content, location, key)

    async def read_file(self, location: str, key: str) -> bytes:
        path = self.resolve_path(location, key)
        if not path.is_file():
            raise NotFoundError(resource="file", resource_id=f"{location}/{key}")
        async with aiofiles.open(path, "rb") as f:
            return await f.read()

    async def cleanup_file(self, file_path: str) -> None:
        """Best-effort removal after a failed upload; failures are only logged."""
        try:
            path = Path(file_path)
            if path.exists():
                os.remove(path)
                logger.info("Cleaned up file: %s", path.name)
            else:
                logger.debug("Cleanup: file already gone: %s", path.name)
        except OSError as e:
            logger.warning("Failed to clean up file %s: %s", file_path, e)


file_service = FileService()
