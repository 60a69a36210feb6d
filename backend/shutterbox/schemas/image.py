"""
ShutterBox Backend — Image Aggregate Schemas
==============================================

What:  Pydantic models for the image aggregate: the image plus its
       metadata, geolocation, landmarks, colors, labels, tags, stats and
       derived source URLs.
Who:   ImageStore builds `Image` on read and accepts it on write; routers
       serialize it as the JSON response body.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, computed_field, field_validator


class GeoPoint(BaseModel):
    """GeoJSON-style point; coordinates are [longitude, latitude]."""
    type: str = Field(default="Point")
    coordinates: List[float] = Field(min_length=2, max_length=2)

    @property
    def longitude(self) -> float:
        return self.coordinates[0]

    @property
    def latitude(self) -> float:
        return self.coordinates[1]

    def to_ewkt(self) -> str:
        return f"SRID=4326;POINT({self.longitude} {self.latitude})"

    @classmethod
    def from_ewkt(cls, value: Optional[str]) -> Optional["GeoPoint"]:
        """Parses `SRID=4326;POINT(lng lat)`; returns None for NULL or unparseable text."""
        if not value or "POINT(" not in value:
            return None
        inner = value[value.index("POINT(") + len("POINT("):].rstrip(")")
        parts = inner.split()
        if len(parts) != 2:
            return None
        try:
            return cls(coordinates=[float(parts[0]), float(parts[1])])
        except ValueError:
            return None


class ImageMetadata(BaseModel):
    aperture: Optional[float] = None
    exposure_time: Optional[str] = None
    focal_length: Optional[float] = None
    iso: Optional[int] = None
    make: Optional[str] = None
    model: Optional[str] = None
    lens_make: Optional[str] = None
    lens_model: Optional[str] = None
    pixel_xd: Optional[int] = None
    pixel_yd: Optional[int] = None
    capture_time: Optional[datetime] = None
    location: Optional[GeoPoint] = None
    image_direction: Optional[float] = None


class Landmark(BaseModel):
    description: str = Field(min_length=1, max_length=255)
    location: Optional[GeoPoint] = None
    score: float = 0.0


class Label(BaseModel):
    description: str = Field(min_length=1, max_length=255)
    score: float = 0.0


class SRGB(BaseModel):
    r: int = Field(ge=0, le=255)
    g: int = Field(ge=0, le=255)
    b: int = Field(ge=0, le=255)

    def hex(self) -> str:
        return f"#{self.r:02x}{self.g:02x}{self.b:02x}"


class HSV(BaseModel):
    h: float
    s: float
    v: float


class Color(BaseModel):
    srgb: SRGB
    hsv: HSV
    shade: Optional[str] = None
    color_name: Optional[str] = None
    pixel_fraction: float = 0.0
    score: float = 0.0

    @computed_field
    @property
    def hex(self) -> str:
        return self.srgb.hex()


class ImageStats(BaseModel):
    views: int = 0
    downloads: int = 0
    favorites: int = 0


class ImageSource(BaseModel):
    raw: str
    large: str
    medium: str
    small: str
    thumb: str


class Image(BaseModel):
    """
    The full image aggregate.

    `id` and `source` are assigned by storage and filled in on read;
    everything else is supplied by the upload flow before create_image.
    """
    id: Optional[int] = None
    owner_id: int
    shortcode: str = Field(min_length=1, max_length=32)
    publish_time: Optional[datetime] = None
    featured: bool = False
    metadata: ImageMetadata = Field(default_factory=ImageMetadata)
    landmarks: List[Landmark] = Field(default_factory=list)
    colors: List[Color] = Field(default_factory=list)
    labels: List[Label] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    stats: ImageStats = Field(default_factory=ImageStats)
    source: Optional[ImageSource] = None

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v: List[str]) -> List[str]:
        """Lowercases, strips and de-duplicates tags, keeping first-seen order."""
        seen: List[str] = []
        for tag in v:
            cleaned = tag.strip().lower()
            if cleaned and cleaned not in seen:
                seen.append(cleaned)
        return seen


class ImageUploadResponse(BaseModel):
    message: str = Field(default="Image accepted")
    shortcode: str
    image: Image
