"""
ShutterBox Backend — File Serving Route
=========================================

What:  GET /files/{location}/{shortcode}, the target of every derived
       source URL when no external CDN fronts the service.
Security:
    FileService.resolve_path() only accepts known locations and
    URL-safe keys, so the path cannot leave the storage root.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from shutterbox.database import get_db_session
from shutterbox.schemas.common import ErrorResponse
from shutterbox.services.file_service import file_service
from shutterbox.services.image_store import image_store
from shutterbox.services.sources import CONTENT_LOCATION

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/files", tags=["Files"])


@router.get(
    "/{location}/{shortcode}",
    responses={
        200: {"description": "Image bytes", "content": {"image/jpeg": {}, "image/png": {}}},
        404: {"description": "File not found", "model": ErrorResponse},
    },
    summary="Serve a stored photo or avatar",
)
async def serve_file(
    location: str,
    shortcode: str,
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    content = await file_service.read_file(location, shortcode)
    media_type = file_service.validate_format(content)

    if location == CONTENT_LOCATION:
        image_id = await image_store.get_image_id(db, shortcode)
        await image_store.record_download(db, image_id)

    return Response(
        content=content,
        media_type=media_type,
        headers={"Cache-Control": "public, max-age=86400"},
    )
