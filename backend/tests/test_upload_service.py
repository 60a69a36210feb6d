"""
ShutterBox Backend — Upload Service Tests
===========================================

What:  The photo upload orchestration (validate → store → analyze →
       detect → create_image) and avatar uploads.
How:   Real database and storage directory; the vision provider is a
       stub so no network call happens.

What we test:
    ✅ Successful upload persists the aggregate with colors, labels, tags
    ✅ Invalid bytes are rejected before anything is stored
    ✅ Vision or database failure removes the stored file again
    ✅ Avatar upload stores the file and points the user row at it
"""

from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from conftest import count_rows
from shutterbox.exceptions import ValidationError, VisionServiceError
from shutterbox.models import Image
from shutterbox.schemas.image import Label, Landmark
from shutterbox.services.file_service import file_service
from shutterbox.services.upload_service import UploadService, new_shortcode
from shutterbox.services.user_store import user_store
from shutterbox.services.vision_base import VisionResult, VisionService


class StubVision(VisionService):

    def __init__(self, result=None, error=None):
        self.result = result or VisionResult()
        self.error = error
        self.paths = []

    async def detect(self, image_path: str) -> VisionResult:
        self.paths.append(image_path)
        if self.error:
            raise self.error
        return self.result

    async def health_check(self) -> bool:
        return True


def _stored_files(location="content"):
    directory = file_service.storage_root / location
    return set(directory.iterdir()) if directory.exists() else set()


def test_shortcodes_are_url_safe_and_unique():
    codes = {new_shortcode() for _ in range(200)}
    assert len(codes) == 200
    assert all(len(code) == 11 for code in codes)
    assert all(ch.isalnum() or ch in "-_" for code in codes for ch in code)


class TestUploadImage:

    @pytest.mark.asyncio
    async def test_success(self, db_session, make_user, sample_png_bytes):
        owner = await make_user("alice")
        vision = StubVision(VisionResult(
            labels=[Label(description="flag", score=0.8)],
            landmarks=[Landmark(description="Somewhere", score=0.4)],
        ))

        response = await UploadService(vision=vision).upload_image(
            db_session, owner, sample_png_bytes, tags=["Flags", "flags", " test "]
        )

        image = response.image
        assert response.shortcode == image.shortcode
        assert image.owner_id == owner
        assert image.metadata.pixel_xd == 64
        assert image.colors
        assert [l.description for l in image.labels] == ["flag"]
        assert [l.description for l in image.landmarks] == ["Somewhere"]
        assert image.tags == ["flags", "test"]
        assert image.source.raw.endswith(f"/content/{image.shortcode}")
        assert (file_service.storage_root / "content" / image.shortcode).exists()
        assert vision.paths == [str(file_service.resolve_path("content", image.shortcode))]

    @pytest.mark.asyncio
    async def test_invalid_bytes_rejected(self, db_session, make_user):
        owner = await make_user("alice")
        before = _stored_files()
        vision = StubVision()

        with pytest.raises(ValidationError):
            await UploadService(vision=vision).upload_image(db_session, owner, b"not an image")

        assert vision.paths == []
        assert _stored_files() == before
        assert await count_rows(db_session, Image) == 0

    @pytest.mark.asyncio
    async def test_vision_failure_removes_file(self, db_session, make_user, sample_image_bytes):
        owner = await make_user("alice")
        before = _stored_files()
        vision = StubVision(error=VisionServiceError())

        with pytest.raises(VisionServiceError):
            await UploadService(vision=vision).upload_image(db_session, owner, sample_image_bytes)

        assert _stored_files() == before
        assert await count_rows(db_session, Image) == 0

    @pytest.mark.asyncio
    async def test_database_failure_removes_file(self, db_session, make_user, sample_image_bytes):
        owner = await make_user("alice")
        before = _stored_files()
        vision = StubVision(VisionResult(labels=[Label(description="x", score=0.1)]))

        with patch(
            "shutterbox.services.image_store.resolve_label",
            side_effect=OperationalError("INSERT", {}, Exception("disk I/O error")),
        ):
            with pytest.raises(OperationalError):
                await UploadService(vision=vision).upload_image(db_session, owner, sample_image_bytes)

        assert _stored_files() == before
        assert await count_rows(db_session, Image) == 0


class TestUploadAvatar:

    @pytest.mark.asyncio
    async def test_avatar(self, db_session, make_user, sample_image_bytes):
        alice = await make_user("alice")

        key = await UploadService(vision=StubVision()).upload_avatar(db_session, alice, sample_image_bytes)

        assert (file_service.storage_root / "avatars" / key).exists()
        user = await user_store.get_user(db_session, alice)
        assert user.avatar.raw.endswith(f"/avatars/{key}")

    @pytest.mark.asyncio
    async def test_avatar_rejects_empty_body(self, db_session, make_user):
        alice = await make_user("alice")
        with pytest.raises(ValidationError):
            await UploadService(vision=StubVision()).upload_avatar(db_session, alice, b"")
