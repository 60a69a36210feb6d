"""
ShutterBox Backend — Image SQLAlchemy Models
==============================================

What:  ORM models for `content.images` and its two 1:1 facets,
       `content.image_metadata` and `content.image_geo`.
Who:   ImageStore.create_image writes all three in one atomic() scope;
       ImageStore.get_image reads them back facet by facet.

Query Patterns:
    - Recent / featured listings: ORDER BY publish_time DESC LIMIT n
      → idx_images_publish_time
    - Shortcode lookup: WHERE shortcode = :code → unique index
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from shutterbox.database import Base
from shutterbox.models.columns import Identifier


class Image(Base):
    """
    One uploaded photograph.

    Stats (views/downloads/favorites) are plain counters on the row; the
    favorites counter moves together with content.user_favorites.
    """

    __tablename__ = "images"

    id: Mapped[int] = mapped_column(Identifier, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(
        Identifier,
        ForeignKey("content.users.id", ondelete="CASCADE"),
        nullable=False,
    )
    shortcode: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    publish_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )
    featured: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    views: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    downloads: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    favorites: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )

    __table_args__ = (
        Index("idx_images_publish_time", publish_time.desc()),
        Index("idx_images_owner", "owner_id"),
        {"schema": "content"},
    )

    def __repr__(self) -> str:
        return f"<Image(id={self.id}, shortcode='{self.shortcode}', owner_id={self.owner_id})>"


class ImageMetadata(Base):
    """Camera and exposure attributes, one row per image."""

    __tablename__ = "image_metadata"
    __table_args__ = {"schema": "content"}

    image_id: Mapped[int] = mapped_column(
        Identifier,
        ForeignKey("content.images.id", ondelete="CASCADE"),
        primary_key=True,
    )
    aperture: Mapped[float | None] = mapped_column(Float, nullable=True)
    # Kept as its display representation, e.g. "1/250"
    exposure_time: Mapped[str | None] = mapped_column(String(32), nullable=True)
    focal_length: Mapped[float | None] = mapped_column(Float, nullable=True)
    iso: Mapped[int | None] = mapped_column(Integer, nullable=True)
    make: Mapped[str | None] = mapped_column(String(128), nullable=True)
    model: Mapped[str | None] = mapped_column(String(128), nullable=True)
    lens_make: Mapped[str | None] = mapped_column(String(128), nullable=True)
    lens_model: Mapped[str | None] = mapped_column(String(128), nullable=True)
    pixel_xd: Mapped[int | None] = mapped_column(Integer, nullable=True)
    pixel_yd: Mapped[int | None] = mapped_column(Integer, nullable=True)
    capture_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class ImageGeo(Base):
    """
    Capture location and compass direction, one row per image.

    loc holds EWKT (`SRID=4326;POINT(lng lat)`) so the same text loads into
    a PostGIS geography column; NULL when the photo carries no GPS data.
    """

    __tablename__ = "image_geo"
    __table_args__ = {"schema": "content"}

    image_id: Mapped[int] = mapped_column(
        Identifier,
        ForeignKey("content.images.id", ondelete="CASCADE"),
        primary_key=True,
    )
    loc: Mapped[str | None] = mapped_column(Text, nullable=True)
    dir: Mapped[float | None] = mapped_column(Float, nullable=True)
