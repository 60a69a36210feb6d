"""
ShutterBox Backend — Image Route Handlers
===========================================

What:  Upload, listings, single-image reads, deletion and favorites.
Who:   Feed, profile and upload screens of the clients.

Request Flow (POST /images):
    1. Bearer token → caller id
    2. multipart `file` read into memory (bounded by the size check)
    3. UploadService: validate & store → EXIF/colors → vision → create_image
    4. 202 with the shortcode and the stored aggregate

Listing routes are declared before /{shortcode} so "recent" and
"featured" are never taken for shortcodes.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from shutterbox.config import settings
from shutterbox.database import get_db_session
from shutterbox.schemas.common import AcceptedResponse, ErrorResponse
from shutterbox.schemas.image import Image, ImageUploadResponse
from shutterbox.services.auth_service import get_current_user_id
from shutterbox.services.file_service import file_service
from shutterbox.services.image_store import image_store
from shutterbox.services.permission_service import permission_service
from shutterbox.services.sources import CONTENT_LOCATION
from shutterbox.services.upload_service import upload_service
from shutterbox.services.user_store import user_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/images", tags=["Images"])

_NOT_FOUND = {404: {"description": "No such image", "model": ErrorResponse}}


def _split_tags(tags: Optional[str]) -> List[str]:
    if not tags:
        return []
    return [tag for tag in (part.strip() for part in tags.split(",")) if tag]


@router.post(
    "",
    status_code=202,
    response_model=ImageUploadResponse,
    responses={
        400: {"description": "Empty, oversized or non-JPEG/PNG file", "model": ErrorResponse},
        401: {"description": "Missing or invalid token", "model": ErrorResponse},
        503: {"description": "Vision service unavailable", "model": ErrorResponse},
    },
    summary="Upload a photo",
)
async def upload_image(
    file: UploadFile = File(..., description="JPEG or PNG photo"),
    tags: Optional[str] = Form(default=None, description="Comma-separated tags"),
    owner_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> ImageUploadResponse:
    content = await file.read()
    logger.info(
        "Received upload: filename=%s, size=%d bytes",
        file.filename or "unknown",
        len(content),
    )
    try:
        return await upload_service.upload_image(db, owner_id, content, _split_tags(tags))
    finally:
        await file.close()


@router.get("/recent", response_model=List[Image], summary="Newest images first")
async def recent_images(
    limit: Optional[int] = Query(default=None, ge=1, le=100),
    db: AsyncSession = Depends(get_db_session),
) -> List[Image]:
    return await image_store.get_recent_images(db, limit or settings.default_listing_limit)


@router.get("/featured", response_model=List[Image], summary="Newest featured images first")
async def featured_images(
    limit: Optional[int] = Query(default=None, ge=1, le=100),
    db: AsyncSession = Depends(get_db_session),
) -> List[Image]:
    return await image_store.get_featured_images(db, limit or settings.default_listing_limit)


@router.get("/{shortcode}", response_model=Image, responses=_NOT_FOUND)
async def get_image(
    shortcode: str,
    response: Response,
    db: AsyncSession = Depends(get_db_session),
) -> Image:
    image_id = await image_store.get_image_id(db, shortcode)
    await image_store.record_view(db, image_id)
    response.headers["Cache-Control"] = "private, max-age=60"
    return await image_store.get_image(db, image_id)


@router.delete(
    "/{shortcode}",
    status_code=202,
    response_model=AcceptedResponse,
    responses={**_NOT_FOUND, 401: {"description": "Not allowed", "model": ErrorResponse}},
)
async def delete_image(
    shortcode: str,
    caller_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> AcceptedResponse:
    image_id = await image_store.get_image_id(db, shortcode)
    await permission_service.require(db, caller_id, image_id, "image", "delete")
    await image_store.delete_image(db, image_id)
    await file_service.cleanup_file(str(file_service.resolve_path(CONTENT_LOCATION, shortcode)))
    return AcceptedResponse()


@router.post(
    "/{shortcode}/favorite",
    status_code=202,
    response_model=AcceptedResponse,
    responses={**_NOT_FOUND, 409: {"description": "Already a favorite", "model": ErrorResponse}},
)
async def favorite(
    shortcode: str,
    caller_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> AcceptedResponse:
    image_id = await image_store.get_image_id(db, shortcode)
    await permission_service.require(db, caller_id, image_id, "image", "view")
    await user_store.favorite_image(db, caller_id, image_id)
    return AcceptedResponse()


@router.delete(
    "/{shortcode}/favorite",
    status_code=202,
    response_model=AcceptedResponse,
    responses=_NOT_FOUND,
)
async def unfavorite(
    shortcode: str,
    caller_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> AcceptedResponse:
    image_id = await image_store.get_image_id(db, shortcode)
    await permission_service.require(db, caller_id, image_id, "image", "view")
    await user_store.unfavorite_image(db, caller_id, image_id)
    return AcceptedResponse()
