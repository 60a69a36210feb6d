"""
ShutterBox Backend — Derived Image URLs
=========================================

What:  Builds the five display URLs for a stored image or avatar.
Format:
    raw     {base}/{location}/{shortcode}
    large   raw?ixlib=rb-0.3.5&q=80&fm=jpg&crop=entropy
    medium  large + &w=1080&fit=max
    small   large + &w=400&fit=max
    thumb   large + &w=200&fit=max

The query strings are consumed by the image CDN; they must not change.
"""

from typing import Optional

from shutterbox.config import settings
from shutterbox.schemas.image import ImageSource

CONTENT_LOCATION = "content"
AVATAR_LOCATION = "avatars"

_BASE_QUERY = "?ixlib=rb-0.3.5&q=80&fm=jpg&crop=entropy"


def image_sources(shortcode: str, location: str, base_url: Optional[str] = None) -> ImageSource:
    base = (base_url or settings.content_base_url).rstrip("/")
    raw = f"{base}/{location}/{shortcode}"
    large = raw + _BASE_QUERY
    return ImageSource(
        raw=raw,
        large=large,
        medium=large + "&w=1080&fit=max",
        small=large + "&w=400&fit=max",
        thumb=large + "&w=200&fit=max",
    )
