"""
ShutterBox Backend — Reference-Data Resolver (Find-or-Create)
===============================================================

What:  Resolves a natural key (landmark description, RGB triple, label or
       tag description) to the id of its shared reference row, inserting
       the row first when no match exists.
Who:   ImageStore.create_image, once per association, inside its atomic()
       scope.

How:
    1. find_*(): exact natural-key lookup → Lookup(found, id)
    2. absent → INSERT ... ON CONFLICT DO NOTHING RETURNING id
    3. no row returned → another transaction inserted the same key
       between steps 1 and 2; read it back

The unique constraints on the reference tables make step 2 safe under
concurrent uploads. Errors are logged here and re-raised unmodified; no
retry happens at this layer.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

from sqlalchemy import Select, Table, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shutterbox.exceptions import DatabaseError
from shutterbox.models import Color, Label, Landmark, Tag
from shutterbox.schemas.image import Color as ColorSchema
from shutterbox.schemas.image import Landmark as LandmarkSchema

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Lookup:
    """Result of a natural-key lookup. `id` is only meaningful when `found`."""
    found: bool
    id: Optional[int] = None


NOT_FOUND = Lookup(found=False)


def _dialect_insert(db: AsyncSession, table: Table):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    raise DatabaseError(
        message="Unsupported database backend",
        context={"dialect": dialect},
    )


async def _find(db: AsyncSession, stmt: Select) -> Lookup:
    row_id = (await db.execute(stmt)).scalar_one_or_none()
    if row_id is None:
        return NOT_FOUND
    return Lookup(found=True, id=row_id)


async def _find_or_create(
    db: AsyncSession,
    kind: str,
    lookup_stmt: Select,
    table: Table,
    values: Dict[str, Any],
    conflict_columns: Sequence[str],
) -> int:
    try:
        existing = await _find(db, lookup_stmt)
        if existing.found:
            return existing.id

        insert_stmt = (
            _dialect_insert(db, table)
            .values(**values)
            .on_conflict_do_nothing(index_elements=list(conflict_columns))
            .returning(table.c.id)
        )
        inserted = (await db.execute(insert_stmt)).scalar_one_or_none()
        if inserted is not None:
            logger.debug("Created %s %s → id=%d", kind, values, inserted)
            return inserted

        # Lost the insert race to a concurrent transaction
        existing = await _find(db, lookup_stmt)
        if existing.found:
            return existing.id
    except SQLAlchemyError as e:
        logger.error("Failed to resolve %s %s: %s", kind, values, e)
        raise

    logger.error("Resolve of %s %s neither found nor inserted a row", kind, values)
    raise DatabaseError(
        message="Could not resolve reference data",
        context={"kind": kind, "key": str(values)},
    )


# ── Lookups ───────────────────────────────────────────────────────────────

def _landmark_query(description: str) -> Select:
    return select(Landmark.id).where(Landmark.description == description)


def _color_query(red: int, green: int, blue: int) -> Select:
    return select(Color.id).where(
        Color.red == red,
        Color.green == green,
        Color.blue == blue,
    )


def _label_query(description: str) -> Select:
    return select(Label.id).where(Label.description == description)


def _tag_query(description: str) -> Select:
    return select(Tag.id).where(Tag.description == description)


async def find_landmark(db: AsyncSession, description: str) -> Lookup:
    return await _find(db, _landmark_query(description))


async def find_color(db: AsyncSession, red: int, green: int, blue: int) -> Lookup:
    return await _find(db, _color_query(red, green, blue))


async def find_label(db: AsyncSession, description: str) -> Lookup:
    return await _find(db, _label_query(description))


async def find_tag(db: AsyncSession, description: str) -> Lookup:
    return await _find(db, _tag_query(description))


# ── Find-or-Create ────────────────────────────────────────────────────────

async def resolve_landmark(db: AsyncSession, landmark: LandmarkSchema) -> int:
    return await _find_or_create(
        db,
        "landmark",
        _landmark_query(landmark.description),
        Landmark.__table__,
        {
            "desc": landmark.description,
            "location": landmark.location.to_ewkt() if landmark.location else None,
        },
        ["desc"],
    )


async def resolve_color(db: AsyncSession, color: ColorSchema) -> int:
    rgb = color.srgb
    return await _find_or_create(
        db,
        "color",
        _color_query(rgb.r, rgb.g, rgb.b),
        Color.__table__,
        {
            "red": rgb.r,
            "green": rgb.g,
            "blue": rgb.b,
            "hue": color.hsv.h,
            "saturation": color.hsv.s,
            "val": color.hsv.v,
            "shade": color.shade,
            "color": color.color_name,
        },
        ["red", "green", "blue"],
    )


async def resolve_label(db: AsyncSession, description: str) -> int:
    return await _find_or_create(
        db,
        "label",
        _label_query(description),
        Label.__table__,
        {"description": description},
        ["description"],
    )


async def resolve_tag(db: AsyncSession, description: str) -> int:
    return await _find_or_create(
        db,
        "tag",
        _tag_query(description),
        Tag.__table__,
        {"description": description},
        ["description"],
    )
