"""
ORM models for the `content` and `permissions` schemas.

Importing this package registers every table with Base.metadata
(needed by create_schema() and Alembic autogenerate).
"""

from shutterbox.models.user import User
from shutterbox.models.image import Image, ImageGeo, ImageMetadata
from shutterbox.models.reference import (
    Color,
    ImageColor,
    ImageLabel,
    ImageLandmark,
    ImageTag,
    Label,
    Landmark,
    Tag,
)
from shutterbox.models.social import UserFavorite, UserFollow
from shutterbox.models.permission import CanDelete, CanEdit, CanView, GRANT_TABLES

__all__ = [
    "User",
    "Image",
    "ImageGeo",
    "ImageMetadata",
    "Color",
    "ImageColor",
    "ImageLabel",
    "ImageLandmark",
    "ImageTag",
    "Label",
    "Landmark",
    "Tag",
    "UserFavorite",
    "UserFollow",
    "CanDelete",
    "CanEdit",
    "CanView",
    "GRANT_TABLES",
]
