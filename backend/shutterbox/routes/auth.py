"""
ShutterBox Backend — Account Route Handlers
=============================================

What:  POST /signup, POST /login and POST /avatar.
Who:   Web and mobile clients.

Signup Flow:
    validate body (pydantic) → username/email uniqueness → argon2 hash with
    a fresh salt → UserStore.create_user (user row + grants, atomic) → 202
"""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from shutterbox.database import get_db_session
from shutterbox.exceptions import NotFoundError, UnauthorizedError
from shutterbox.schemas.common import AcceptedResponse, ErrorResponse
from shutterbox.schemas.user import LoginRequest, NewUser, SignupRequest, TokenResponse
from shutterbox.services.auth_service import (
    create_access_token,
    get_current_user_id,
    hash_password,
    verify_password,
)
from shutterbox.services.upload_service import upload_service
from shutterbox.services.user_store import user_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Account"])


@router.post(
    "/signup",
    status_code=202,
    response_model=AcceptedResponse,
    responses={
        400: {"description": "Invalid signup body", "model": ErrorResponse},
        409: {"description": "Username or email already exists", "model": ErrorResponse},
    },
    summary="Create an account",
)
async def signup(
    body: SignupRequest,
    db: AsyncSession = Depends(get_db_session),
) -> AcceptedResponse:
    password_hash, salt = hash_password(body.password)
    user_id = await user_store.create_user(
        db,
        NewUser(
            username=body.username,
            email=body.email,
            password=password_hash,
            salt=salt,
        ),
    )
    logger.info("Signup accepted for %s (id=%d)", body.username, user_id)
    return AcceptedResponse()


@router.post(
    "/login",
    response_model=TokenResponse,
    responses={401: {"description": "Bad credentials", "model": ErrorResponse}},
    summary="Exchange credentials for a bearer token",
)
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_db_session),
) -> TokenResponse:
    """Unknown usernames and wrong passwords get the same 401."""
    try:
        user_id, password_hash, salt = await user_store.get_credentials(db, body.username.lower())
    except NotFoundError:
        raise UnauthorizedError(message="Invalid username or password")

    if not verify_password(body.password, salt, password_hash):
        raise UnauthorizedError(message="Invalid username or password")

    return TokenResponse(access_token=create_access_token(user_id))


@router.post(
    "/avatar",
    status_code=202,
    response_model=AcceptedResponse,
    responses={
        400: {"description": "Empty, oversized or non-image body", "model": ErrorResponse},
        401: {"description": "Missing or invalid token", "model": ErrorResponse},
    },
    summary="Upload the caller's avatar (raw image bytes as the request body)",
)
async def upload_avatar(
    request: Request,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> AcceptedResponse:
    content = await request.body()
    await upload_service.upload_avatar(db, user_id, content)
    return AcceptedResponse()
