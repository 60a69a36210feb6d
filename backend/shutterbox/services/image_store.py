"""
ShutterBox Backend — Image Store (Transaction Writer and Aggregate Readers)
============================================================================

What:  Persists an image aggregate as one atomic unit and reassembles it
       facet by facet on read.
Who:   Image routes and UserStore (owned images, favorites).

Write path (create_image), one atomic() scope:
    ┌────────────┐   ┌──────────────┐   ┌───────────┐   ┌──────────────────┐   ┌─────────────┐
    │ images row │──▶│ metadata row │──▶│ geo row   │──▶│ landmark / color │──▶│ 3 grants    │
    │ (id)       │   │ (1:1)        │   │ (1:1)     │   │ label / tag      │   │ edit/delete │
    └────────────┘   └──────────────┘   └───────────┘   │ resolve + bridge │   │ /view       │
                                                        └──────────────────┘   └─────────────┘
    Any failure → rollback, nothing durable remains.

Read path (get_image): one query per facet (row, metadata+geo, landmarks,
labels, tags, colors), then sources derived from the shortcode.

Error policy:
    SQLAlchemy errors are logged here and re-raised unmodified; a missing
    image becomes NotFoundError. Plural readers stop at the first failure
    and return nothing.
"""

import logging
from typing import Any, List, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shutterbox.database import atomic
from shutterbox.exceptions import DatabaseError, NotFoundError, ValidationError
from shutterbox.models import (
    Color,
    Image,
    ImageColor,
    ImageGeo,
    ImageLabel,
    ImageLandmark,
    ImageMetadata,
    ImageTag,
    Label,
    Landmark,
    Tag,
    UserFavorite,
)
from shutterbox.schemas import image as schema
from shutterbox.schemas.common import Collection, Ref
from shutterbox.services.permission_service import permission_service
from shutterbox.services.resolver import (
    resolve_color,
    resolve_label,
    resolve_landmark,
    resolve_tag,
)
from shutterbox.services.sources import CONTENT_LOCATION, image_sources

logger = logging.getLogger(__name__)


async def _execute(db: AsyncSession, stmt: Any, what: str):
    try:
        return await db.execute(stmt)
    except SQLAlchemyError as e:
        logger.error("Query for %s failed: %s", what, e)
        raise


class ImageStore:
    """
    Persistence for the image aggregate.

    Stateless: every method receives the session to use, so each request's
    work stays on the connection that request opened.
    """

    # ══════════════════════════════════════════════════════════════════════
    # Writers
    # ══════════════════════════════════════════════════════════════════════

    async def create_image(self, db: AsyncSession, image: schema.Image) -> int:
        """
        Persist a fully populated image aggregate; returns the new image id.

        Steps (ordered by foreign-key dependencies):
            1. images row → generated id
            2. image_metadata row
            3. image_geo row (NULL point when the photo has no GPS data)
            4. each landmark / color / label / tag: find-or-create the
               reference row, then insert the bridge row with its score
            5. owner can_edit + can_delete, everyone can_view
            6. commit (atomic)

        Raises:
            IntegrityError: duplicate shortcode (→ 409)
            TransactionRollbackError: a step failed and so did the rollback
        """
        meta = image.metadata
        try:
            async with atomic(db):
                row_values = {
                    "owner_id": image.owner_id,
                    "shortcode": image.shortcode,
                    "featured": image.featured,
                }
                if image.publish_time is not None:
                    row_values["publish_time"] = image.publish_time
                row = Image(**row_values)
                db.add(row)
                await db.flush()
                image_id = row.id

                db.add(ImageMetadata(
                    image_id=image_id,
                    aperture=meta.aperture,
                    exposure_time=meta.exposure_time,
                    focal_length=meta.focal_length,
                    iso=meta.iso,
                    make=meta.make,
                    model=meta.model,
                    lens_make=meta.lens_make,
                    lens_model=meta.lens_model,
                    pixel_xd=meta.pixel_xd,
                    pixel_yd=meta.pixel_yd,
                    capture_time=meta.capture_time,
                ))
                db.add(ImageGeo(
                    image_id=image_id,
                    loc=meta.location.to_ewkt() if meta.location else None,
                    dir=meta.image_direction,
                ))
                await db.flush()

                # The same reference row may come back twice (e.g. two
                # palette entries quantized to one RGB); one bridge row each.
                seen = set()
                for landmark in image.landmarks:
                    landmark_id = await resolve_landmark(db, landmark)
                    if landmark_id not in seen:
                        seen.add(landmark_id)
                        db.add(ImageLandmark(
                            image_id=image_id, landmark_id=landmark_id, score=landmark.score
                        ))

                seen = set()
                for color in image.colors:
                    color_id = await resolve_color(db, color)
                    if color_id not in seen:
                        seen.add(color_id)
                        db.add(ImageColor(
                            image_id=image_id,
                            color_id=color_id,
                            pixel_fraction=color.pixel_fraction,
                            score=color.score,
                        ))

                seen = set()
                for label in image.labels:
                    label_id = await resolve_label(db, label.description)
                    if label_id not in seen:
                        seen.add(label_id)
                        db.add(ImageLabel(image_id=image_id, label_id=label_id, score=label.score))

                for tag in image.tags:
                    tag_id = await resolve_tag(db, tag)
                    db.add(ImageTag(image_id=image_id, tag_id=tag_id))
                await db.flush()

                await permission_service.grant_defaults(db, image.owner_id, image_id, "image")
        except SQLAlchemyError as e:
            logger.error("create_image failed for shortcode=%s: %s", image.shortcode, e)
            raise

        logger.info(
            "Image %s stored as id=%d (%d landmarks, %d colors, %d labels, %d tags)",
            image.shortcode,
            image_id,
            len(image.landmarks),
            len(image.colors),
            len(image.labels),
            len(image.tags),
        )
        return image_id

    async def _delete_image_rows(self, db: AsyncSession, image_id: int) -> None:
        """Delete an image and every row it owns. Caller provides the atomic() scope."""
        for model in (
            ImageLandmark,
            ImageColor,
            ImageLabel,
            ImageTag,
            UserFavorite,
            ImageMetadata,
            ImageGeo,
        ):
            await db.execute(delete(model).where(model.image_id == image_id))
        await db.execute(delete(Image).where(Image.id == image_id))
        await permission_service.revoke_all(db, image_id, "image")

    async def delete_image(self, db: AsyncSession, image_id: int) -> None:
        await self._require_exists(db, image_id)
        try:
            async with atomic(db):
                await self._delete_image_rows(db, image_id)
        except SQLAlchemyError as e:
            logger.error("delete_image failed for id=%s: %s", image_id, e)
            raise
        logger.info("Image %s deleted", image_id)

    async def record_view(self, db: AsyncSession, image_id: int) -> None:
        async with atomic(db):
            await _execute(
                db,
                update(Image).where(Image.id == image_id).values(views=Image.views + 1),
                f"image {image_id} views",
            )

    async def record_download(self, db: AsyncSession, image_id: int) -> None:
        async with atomic(db):
            await _execute(
                db,
                update(Image).where(Image.id == image_id).values(downloads=Image.downloads + 1),
                f"image {image_id} downloads",
            )

    # ══════════════════════════════════════════════════════════════════════
    # Readers
    # ══════════════════════════════════════════════════════════════════════

    async def get_image(self, db: AsyncSession, image_id: int) -> schema.Image:
        """
        Reassemble the full aggregate for one image id.

        Raises:
            NotFoundError: no image with that id (→ 404)
        """
        # populate_existing: counters may have moved since the row was loaded
        result = await _execute(
            db,
            select(Image).where(Image.id == image_id).execution_options(populate_existing=True),
            f"image {image_id}",
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError(resource="image", resource_id=str(image_id))

        return schema.Image(
            id=row.id,
            owner_id=row.owner_id,
            shortcode=row.shortcode,
            publish_time=row.publish_time,
            featured=row.featured,
            metadata=await self._metadata(db, image_id),
            landmarks=await self._landmarks(db, image_id),
            labels=await self._labels(db, image_id),
            tags=await self._tags(db, image_id),
            colors=await self._colors(db, image_id),
            stats=schema.ImageStats(
                views=row.views,
                downloads=row.downloads,
                favorites=row.favorites,
            ),
            source=image_sources(row.shortcode, CONTENT_LOCATION),
        )

    async def get_images(self, db: AsyncSession, image_ids: Sequence[int]) -> List[schema.Image]:
        """Ordered; the first failing id aborts the whole call."""
        images = []
        for image_id in image_ids:
            images.append(await self.get_image(db, image_id))
        return images

    async def get_image_id(self, db: AsyncSession, shortcode: str) -> int:
        result = await _execute(
            db,
            select(Image.id).where(Image.shortcode == shortcode),
            f"image shortcode {shortcode}",
        )
        image_id = result.scalar_one_or_none()
        if image_id is None:
            raise NotFoundError(resource="image", resource_id=shortcode)
        return image_id

    async def get_image_ref(self, db: AsyncSession, shortcode: str) -> Ref:
        return Ref(collection=Collection.images, id=await self.get_image_id(db, shortcode))

    async def get_image_owner(self, db: AsyncSession, image_id: int) -> int:
        result = await _execute(
            db, select(Image.owner_id).where(Image.id == image_id), f"image {image_id} owner"
        )
        owner_id = result.scalar_one_or_none()
        if owner_id is None:
            raise NotFoundError(resource="image", resource_id=str(image_id))
        return owner_id

    async def get_recent_images(self, db: AsyncSession, limit: int) -> List[schema.Image]:
        """Newest first by publish_time, at most `limit` images."""
        _check_limit(limit)
        result = await _execute(
            db,
            select(Image.id).order_by(Image.publish_time.desc(), Image.id.desc()).limit(limit),
            "recent images",
        )
        return await self.get_images(db, list(result.scalars().all()))

    async def get_featured_images(self, db: AsyncSession, limit: int) -> List[schema.Image]:
        _check_limit(limit)
        result = await _execute(
            db,
            select(Image.id)
            .where(Image.featured.is_(True))
            .order_by(Image.publish_time.desc(), Image.id.desc())
            .limit(limit),
            "featured images",
        )
        return await self.get_images(db, list(result.scalars().all()))

    # ── Facets ────────────────────────────────────────────────────────────

    async def _require_exists(self, db: AsyncSession, image_id: int) -> None:
        result = await _execute(db, select(Image.id).where(Image.id == image_id), f"image {image_id}")
        if result.scalar_one_or_none() is None:
            raise NotFoundError(resource="image", resource_id=str(image_id))

    async def _metadata(self, db: AsyncSession, image_id: int) -> schema.ImageMetadata:
        result = await _execute(
            db,
            select(ImageMetadata, ImageGeo)
            .join(ImageGeo, ImageGeo.image_id == ImageMetadata.image_id)
            .where(ImageMetadata.image_id == image_id),
            f"image {image_id} metadata",
        )
        found = result.one_or_none()
        if found is None:
            # create_image always writes both rows; their absence is corruption
            logger.error("Image %s has no metadata/geo rows", image_id)
            raise DatabaseError(
                message="Image metadata is missing",
                context={"image_id": image_id},
            )
        meta, geo = found
        return schema.ImageMetadata(
            aperture=meta.aperture,
            exposure_time=meta.exposure_time,
            focal_length=meta.focal_length,
            iso=meta.iso,
            make=meta.make,
            model=meta.model,
            lens_make=meta.lens_make,
            lens_model=meta.lens_model,
            pixel_xd=meta.pixel_xd,
            pixel_yd=meta.pixel_yd,
            capture_time=meta.capture_time,
            location=schema.GeoPoint.from_ewkt(geo.loc),
            image_direction=geo.dir,
        )

    async def _landmarks(self, db: AsyncSession, image_id: int) -> List[schema.Landmark]:
        result = await _execute(
            db,
            select(Landmark.description, Landmark.location, ImageLandmark.score)
            .join(ImageLandmark, ImageLandmark.landmark_id == Landmark.id)
            .where(ImageLandmark.image_id == image_id)
            .order_by(ImageLandmark.score.desc()),
            f"image {image_id} landmarks",
        )
        return [
            schema.Landmark(
                description=description,
                location=schema.GeoPoint.from_ewkt(location),
                score=score,
            )
            for description, location, score in result.all()
        ]

    async def _labels(self, db: AsyncSession, image_id: int) -> List[schema.Label]:
        result = await _execute(
            db,
            select(Label.description, ImageLabel.score)
            .join(ImageLabel, ImageLabel.label_id == Label.id)
            .where(ImageLabel.image_id == image_id)
            .order_by(ImageLabel.score.desc()),
            f"image {image_id} labels",
        )
        return [schema.Label(description=d, score=s) for d, s in result.all()]

    async def _tags(self, db: AsyncSession, image_id: int) -> List[str]:
        result = await _execute(
            db,
            select(Tag.description)
            .join(ImageTag, ImageTag.tag_id == Tag.id)
            .where(ImageTag.image_id == image_id)
            .order_by(Tag.description),
            f"image {image_id} tags",
        )
        return list(result.scalars().all())

    async def _colors(self, db: AsyncSession, image_id: int) -> List[schema.Color]:
        result = await _execute(
            db,
            select(Color, ImageColor.pixel_fraction, ImageColor.score)
            .join(ImageColor, ImageColor.color_id == Color.id)
            .where(ImageColor.image_id == image_id)
            .order_by(ImageColor.pixel_fraction.desc()),
            f"image {image_id} colors",
        )
        return [
            schema.Color(
                srgb=schema.SRGB(r=color.red, g=color.green, b=color.blue),
                hsv=schema.HSV(h=color.hue, s=color.saturation, v=color.val),
                shade=color.shade,
                color_name=color.color,
                pixel_fraction=pixel_fraction,
                score=score,
            )
            for color, pixel_fraction, score in result.all()
        ]


def _check_limit(limit: int) -> None:
    if limit < 1:
        raise ValidationError(message="limit must be at least 1", field="limit")


image_store = ImageStore()
