"""
ShutterBox Backend — Upload Service (Photo and Avatar Orchestration)
======================================================================

What:  Turns uploaded bytes into a stored file plus a persisted image
       aggregate (or an avatar key on the user row).
Who:   POST /images and POST /avatar route handlers.

Orchestration Flow (POST /images):
    ┌──────────┐    ┌─────────────┐    ┌──────────────┐    ┌─────────────┐    ┌──────────────┐
    │  Upload  │───▶│  Validate   │───▶│  EXIF +      │───▶│  Vision     │───▶│ create_image │
    │  (Route) │    │  & Store    │    │  colors      │    │  (Gemini)   │    │  (atomic)    │
    └──────────┘    └─────────────┘    └──────────────┘    └─────────────┘    └──────────────┘

    On failure after the file is stored, the file is removed again and the
    original error propagates to the exception handlers.
"""

import logging
import secrets
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from shutterbox.schemas.image import Image, ImageUploadResponse
from shutterbox.services import image_analysis
from shutterbox.services.file_service import file_service
from shutterbox.services.image_store import image_store
from shutterbox.services.sources import AVATAR_LOCATION, CONTENT_LOCATION
from shutterbox.services.user_store import user_store
from shutterbox.services.vision_base import VisionService
from shutterbox.services.vision_service import vision_service

logger = logging.getLogger(__name__)


def new_shortcode() -> str:
    """11 URL-safe characters; also the storage key of the file."""
    return secrets.token_urlsafe(8)


class UploadService:
    """Stateless. The vision provider is injectable for tests."""

    def __init__(self, vision: Optional[VisionService] = None):
        self.vision = vision or vision_service

    async def upload_image(
        self,
        db: AsyncSession,
        owner_id: int,
        content: bytes,
        tags: Optional[List[str]] = None,
    ) -> ImageUploadResponse:
        """
        Raises:
            ValidationError: empty, oversized or non-JPEG/PNG content (400)
            VisionServiceError / CircuitBreakerOpenError: Gemini unavailable (503)
            FileStorageError: disk write failed (500)
        """
        shortcode = new_shortcode()
        path = await file_service.validate_and_store(content, CONTENT_LOCATION, shortcode)

        try:
            metadata, colors = await run_in_threadpool(image_analysis.analyze, content)
            detected = await self.vision.detect(str(path))

            image = Image(
                owner_id=owner_id,
                shortcode=shortcode,
                metadata=metadata,
                colors=colors,
                labels=detected.labels,
                landmarks=detected.landmarks,
                tags=tags or [],
            )
            image_id = await image_store.create_image(db, image)
            stored = await image_store.get_image(db, image_id)
        except Exception:
            await file_service.cleanup_file(str(path))
            raise

        logger.info("Upload complete: user %s → image %s", owner_id, shortcode)
        return ImageUploadResponse(shortcode=shortcode, image=stored)

    async def upload_avatar(self, db: AsyncSession, user_id: int, content: bytes) -> str:
        """Stores the avatar under a fresh key and points the user row at it."""
        key = new_shortcode()
        path = await file_service.validate_and_store(content, AVATAR_LOCATION, key)
        try:
            await user_store.set_avatar(db, user_id, key)
        except Exception:
            await file_service.cleanup_file(str(path))
            raise
        logger.info("Avatar updated for user %s → %s", user_id, key)
        return key


upload_service = UploadService()
