"""
ShutterBox Backend — User Route Handlers
==========================================

What:  User profiles, account deletion and the follow graph.
How:   Path usernames are resolved to ids first (404 when unknown), then
       write routes check the caller's grant on the target user.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from shutterbox.database import get_db_session
from shutterbox.schemas.common import AcceptedResponse, ErrorResponse
from shutterbox.schemas.image import Image
from shutterbox.schemas.user import User
from shutterbox.services.auth_service import get_current_user_id
from shutterbox.services.file_service import file_service
from shutterbox.services.permission_service import permission_service
from shutterbox.services.sources import AVATAR_LOCATION, CONTENT_LOCATION
from shutterbox.services.user_store import user_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])

_NOT_FOUND = {404: {"description": "No such user", "model": ErrorResponse}}


@router.get("/{username}", response_model=User, responses=_NOT_FOUND)
async def get_user(username: str, db: AsyncSession = Depends(get_db_session)) -> User:
    user_id = await user_store.get_user_id(db, username)
    return await user_store.get_user(db, user_id)


@router.delete(
    "/{username}",
    status_code=202,
    response_model=AcceptedResponse,
    responses={**_NOT_FOUND, 401: {"description": "Not allowed", "model": ErrorResponse}},
)
async def delete_user(
    username: str,
    caller_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> AcceptedResponse:
    user_id = await user_store.get_user_id(db, username)
    await permission_service.require(db, caller_id, user_id, "user", "delete")
    removed = await user_store.delete_user(db, user_id)
    for shortcode in removed.shortcodes:
        await file_service.cleanup_file(str(file_service.resolve_path(CONTENT_LOCATION, shortcode)))
    if removed.avatar:
        await file_service.cleanup_file(str(file_service.resolve_path(AVATAR_LOCATION, removed.avatar)))
    return AcceptedResponse()


@router.post(
    "/{username}/follow",
    status_code=202,
    response_model=AcceptedResponse,
    responses={
        **_NOT_FOUND,
        400: {"description": "Cannot follow yourself", "model": ErrorResponse},
        409: {"description": "Already following", "model": ErrorResponse},
    },
)
async def follow(
    username: str,
    caller_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> AcceptedResponse:
    followed_id = await user_store.get_user_id(db, username)
    await permission_service.require(db, caller_id, followed_id, "user", "view")
    await user_store.follow_user(db, caller_id, followed_id)
    return AcceptedResponse()


@router.delete(
    "/{username}/follow",
    status_code=202,
    response_model=AcceptedResponse,
    responses=_NOT_FOUND,
)
async def unfollow(
    username: str,
    caller_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> AcceptedResponse:
    followed_id = await user_store.get_user_id(db, username)
    await permission_service.require(db, caller_id, followed_id, "user", "view")
    await user_store.unfollow_user(db, caller_id, followed_id)
    return AcceptedResponse()


@router.get("/{username}/favorites", response_model=List[Image], responses=_NOT_FOUND)
async def get_favorites(username: str, db: AsyncSession = Depends(get_db_session)) -> List[Image]:
    user_id = await user_store.get_user_id(db, username)
    return await user_store.get_user_favorites(db, user_id)


@router.get("/{username}/followed", response_model=List[User], responses=_NOT_FOUND)
async def get_followed(username: str, db: AsyncSession = Depends(get_db_session)) -> List[User]:
    user_id = await user_store.get_user_id(db, username)
    return await user_store.get_user_followed(db, user_id)
