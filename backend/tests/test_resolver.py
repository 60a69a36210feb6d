"""
ShutterBox Backend — Reference-Data Resolver Tests
====================================================

What:  Find-or-create behaviour for landmarks, colors, labels and tags.
How:   Real SQLite database (attached content/permissions schemas).

What we test:
    ✅ Lookups report absence explicitly
    ✅ Resolving the same key twice yields one row
    ✅ Colors are keyed by RGB only; differing HSV does not split a color
    ✅ Losing the insert race falls back to the existing row
"""

from unittest.mock import patch

import pytest

from conftest import build_color, count_rows
from shutterbox.models import Color, Label, Landmark, Tag
from shutterbox.schemas.image import HSV, GeoPoint
from shutterbox.schemas.image import Landmark as LandmarkSchema
from shutterbox.services import resolver


class TestLookups:

    @pytest.mark.asyncio
    async def test_missing_label_is_not_found(self, db_session):
        result = await resolver.find_label(db_session, "beach")
        assert result.found is False
        assert result.id is None

    @pytest.mark.asyncio
    async def test_found_after_resolve(self, db_session):
        label_id = await resolver.resolve_label(db_session, "beach")
        result = await resolver.find_label(db_session, "beach")
        assert result.found is True
        assert result.id == label_id


class TestFindOrCreate:

    @pytest.mark.asyncio
    async def test_label_resolves_to_one_row(self, db_session):
        first = await resolver.resolve_label(db_session, "mountain")
        second = await resolver.resolve_label(db_session, "mountain")
        assert first == second
        assert await count_rows(db_session, Label) == 1

    @pytest.mark.asyncio
    async def test_tag_resolves_to_one_row(self, db_session):
        first = await resolver.resolve_tag(db_session, "sunset")
        second = await resolver.resolve_tag(db_session, "sunset")
        other = await resolver.resolve_tag(db_session, "night")
        assert first == second
        assert other != first
        assert await count_rows(db_session, Tag) == 2

    @pytest.mark.asyncio
    async def test_landmark_keeps_location(self, db_session):
        landmark = LandmarkSchema(
            description="Golden Gate Bridge",
            location=GeoPoint(coordinates=[-122.4783, 37.8199]),
            score=0.9,
        )
        first = await resolver.resolve_landmark(db_session, landmark)
        second = await resolver.resolve_landmark(db_session, landmark)
        assert first == second

        row = await db_session.get(Landmark, first)
        assert row.description == "Golden Gate Bridge"
        assert row.location == "SRID=4326;POINT(-122.4783 37.8199)"

    @pytest.mark.asyncio
    async def test_color_keyed_by_rgb_only(self, db_session):
        """A second sighting with different HSV/shade reuses the first row."""
        first = await resolver.resolve_color(db_session, build_color(200, 30, 30))
        variant = build_color(200, 30, 30).model_copy(
            update={"hsv": HSV(h=1.0, s=0.5, v=0.5), "shade": "dark"}
        )
        second = await resolver.resolve_color(db_session, variant)

        assert first == second
        assert await count_rows(db_session, Color) == 1
        row = await db_session.get(Color, first)
        assert row.shade == "medium"

    @pytest.mark.asyncio
    async def test_lost_insert_race_reads_existing_row(self, db_session):
        """
        Lookup says absent, but the row already exists by the time we insert
        (another upload created it): ON CONFLICT DO NOTHING returns nothing
        and the resolver reads the winner's id back.
        """
        winner = await resolver.resolve_label(db_session, "harbor")

        real_find = resolver._find
        calls = {"n": 0}

        async def stale_first_lookup(db, stmt):
            calls["n"] += 1
            if calls["n"] == 1:
                return resolver.NOT_FOUND
            return await real_find(db, stmt)

        with patch.object(resolver, "_find", side_effect=stale_first_lookup):
            resolved = await resolver.resolve_label(db_session, "harbor")

        assert resolved == winner
        assert calls["n"] == 2
        assert await count_rows(db_session, Label) == 1
