"""
ShutterBox Backend — Credentials and Access Tokens
====================================================

What:  Password hashing (argon2 over password + per-user salt) and signed
       bearer tokens (HS256 JWT carrying the user id in `sub`).
Who:   Auth routes (signup, login) and the `get_current_user_id`
       dependency guarding every write route.
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from shutterbox.config import settings
from shutterbox.exceptions import UnauthorizedError

logger = logging.getLogger(__name__)

_hasher = PasswordHasher()
_bearer = HTTPBearer(auto_error=False)


# ── Passwords ─────────────────────────────────────────────────────────────

def hash_password(password: str) -> Tuple[str, str]:
    """Returns (hash, salt). The salt is stored alongside the hash."""
    salt = secrets.token_hex(16)
    return _hasher.hash(password + salt), salt


def verify_password(password: str, salt: str, password_hash: str) -> bool:
    try:
        return _hasher.verify(password_hash, password + salt)
    except (VerificationError, InvalidHashError):
        return False


# ── Tokens ────────────────────────────────────────────────────────────────

def create_access_token(user_id: int, expires_minutes: Optional[int] = None) -> str:
    now = datetime.now(timezone.utc)
    minutes = expires_minutes if expires_minutes is not None else settings.access_token_expire_minutes
    payload = {
        "sub": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=minutes)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> int:
    """
    Validate a bearer token and return its user id.

    Raises:
        UnauthorizedError: bad signature, expired, or malformed subject
    """
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        return int(payload["sub"])
    except (JWTError, KeyError, ValueError) as e:
        logger.info("Rejected access token: %s", e)
        raise UnauthorizedError(message="Invalid or expired token") from e


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> int:
    """FastAPI dependency: the authenticated user's id, or 401."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise UnauthorizedError(message="Missing bearer token")
    return decode_access_token(credentials.credentials)
