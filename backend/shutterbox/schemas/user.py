"""
ShutterBox Backend — User Schemas
===================================

What:  Request bodies for signup/login, the public user aggregate, and the
       internal NewUser record handed to UserStore.create_user.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from shutterbox.schemas.image import Image, ImageSource


class SignupRequest(BaseModel):
    username: str = Field(min_length=3, max_length=64)
    password: str = Field(min_length=8, max_length=256)
    email: EmailStr

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        """Usernames appear in URLs: letters, digits, '_', '-' and '.' only."""
        cleaned = v.strip()
        if not all(ch.isalnum() or ch in "_-." for ch in cleaned):
            raise ValueError("Username may only contain letters, digits, '_', '-' and '.'")
        return cleaned.lower()

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()


class LoginRequest(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = Field(default="bearer")


class NewUser(BaseModel):
    """Credential material already hashed; never serialized to clients."""
    username: str
    email: str
    password: str
    salt: str
    name: Optional[str] = None
    bio: Optional[str] = None


class User(BaseModel):
    id: int
    username: str
    email: str
    name: Optional[str] = None
    bio: Optional[str] = None
    avatar: Optional[ImageSource] = None
    created_at: Optional[datetime] = None
    images: List[Image] = Field(default_factory=list)
    favorites: List[Image] = Field(default_factory=list)
