"""
ShutterBox Backend — Shared Reference Tables and Bridges
==========================================================

What:  Landmarks, colors, labels and tags shared across images, plus the
       bridge tables linking each image to them with a per-pair score.
How:   Natural keys are unique constraints; services/resolver.py looks a
       row up by that key and inserts with ON CONFLICT DO NOTHING when
       absent, so two uploads introducing the same new label share a row.

Natural keys:
    landmarks.desc, colors.(red, green, blue), labels.description,
    image_tags.description
"""

from sqlalchemy import Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from shutterbox.database import Base
from shutterbox.models.columns import Identifier


class Landmark(Base):
    __tablename__ = "landmarks"
    __table_args__ = (
        UniqueConstraint("desc", name="uq_landmarks_desc"),
        {"schema": "content"},
    )

    id: Mapped[int] = mapped_column(Identifier, primary_key=True, autoincrement=True)
    # Column is named `desc` in the schema
    description: Mapped[str] = mapped_column("desc", String(255), nullable=False)
    location: Mapped[str | None] = mapped_column(Text, nullable=True)


class Color(Base):
    __tablename__ = "colors"
    __table_args__ = (
        UniqueConstraint("red", "green", "blue", name="uq_colors_rgb"),
        {"schema": "content"},
    )

    id: Mapped[int] = mapped_column(Identifier, primary_key=True, autoincrement=True)
    red: Mapped[int] = mapped_column(Integer, nullable=False)
    green: Mapped[int] = mapped_column(Integer, nullable=False)
    blue: Mapped[int] = mapped_column(Integer, nullable=False)
    hue: Mapped[float] = mapped_column(Float, nullable=False)
    saturation: Mapped[float] = mapped_column(Float, nullable=False)
    val: Mapped[float] = mapped_column(Float, nullable=False)
    shade: Mapped[str | None] = mapped_column(String(32), nullable=True)
    color: Mapped[str | None] = mapped_column(String(64), nullable=True)


class Label(Base):
    __tablename__ = "labels"
    __table_args__ = (
        UniqueConstraint("description", name="uq_labels_description"),
        {"schema": "content"},
    )

    id: Mapped[int] = mapped_column(Identifier, primary_key=True, autoincrement=True)
    description: Mapped[str] = mapped_column(String(255), nullable=False)


class Tag(Base):
    __tablename__ = "image_tags"
    __table_args__ = (
        UniqueConstraint("description", name="uq_image_tags_description"),
        {"schema": "content"},
    )

    id: Mapped[int] = mapped_column(Identifier, primary_key=True, autoincrement=True)
    description: Mapped[str] = mapped_column(String(255), nullable=False)


# ── Bridges ───────────────────────────────────────────────────────────────

class ImageLandmark(Base):
    __tablename__ = "image_landmark_bridge"
    __table_args__ = {"schema": "content"}

    image_id: Mapped[int] = mapped_column(
        Identifier, ForeignKey("content.images.id", ondelete="CASCADE"), primary_key=True
    )
    landmark_id: Mapped[int] = mapped_column(
        Identifier, ForeignKey("content.landmarks.id"), primary_key=True
    )
    score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)


class ImageColor(Base):
    __tablename__ = "image_color_bridge"
    __table_args__ = {"schema": "content"}

    image_id: Mapped[int] = mapped_column(
        Identifier, ForeignKey("content.images.id", ondelete="CASCADE"), primary_key=True
    )
    color_id: Mapped[int] = mapped_column(
        Identifier, ForeignKey("content.colors.id"), primary_key=True
    )
    pixel_fraction: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)


class ImageLabel(Base):
    __tablename__ = "image_label_bridge"
    __table_args__ = {"schema": "content"}

    image_id: Mapped[int] = mapped_column(
        Identifier, ForeignKey("content.images.id", ondelete="CASCADE"), primary_key=True
    )
    label_id: Mapped[int] = mapped_column(
        Identifier, ForeignKey("content.labels.id"), primary_key=True
    )
    score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)


class ImageTag(Base):
    __tablename__ = "image_tag_bridge"
    __table_args__ = {"schema": "content"}

    image_id: Mapped[int] = mapped_column(
        Identifier, ForeignKey("content.images.id", ondelete="CASCADE"), primary_key=True
    )
    tag_id: Mapped[int] = mapped_column(
        Identifier, ForeignKey("content.image_tags.id"), primary_key=True
    )
