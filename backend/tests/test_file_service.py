"""
ShutterBox Backend — File Service Unit Tests
===============================================

What:  Upload validation (size, decoded format) and keyed storage.
Why:   Uploaded bytes and storage keys are a security boundary.
How:   Real Pillow-encoded images and a per-test storage directory.

Test Strategy:
    ✅ JPEG and PNG accepted, reported with their media type
    ✅ GIF, truncated and non-image bytes rejected
    ✅ Empty and oversized bodies rejected
    ✅ Unknown locations and path-like keys never reach the filesystem
    ✅ Store / read / cleanup round trip
"""

import io
from unittest.mock import patch

import pytest
from PIL import Image

from shutterbox.exceptions import NotFoundError, ValidationError
from shutterbox.services.file_service import FileService


class TestFileValidation:

    @pytest.fixture(autouse=True)
    def service(self, temp_storage):
        self.service = FileService(storage_root=temp_storage)

    # ── Format Validation ─────────────────────────────────────────────────

    def test_jpeg_accepted(self, sample_image_bytes):
        assert self.service.validate_format(sample_image_bytes) == "image/jpeg"

    def test_png_accepted(self, sample_png_bytes):
        assert self.service.validate_format(sample_png_bytes) == "image/png"

    def test_gif_rejected(self):
        """GIF decodes fine but is not an accepted photo format."""
        buf = io.BytesIO()
        Image.new("RGB", (8, 8), (0, 255, 0)).save(buf, format="GIF")
        with pytest.raises(ValidationError, match="not supported"):
            self.service.validate_format(buf.getvalue())

    def test_text_rejected(self):
        with pytest.raises(ValidationError, match="valid image"):
            self.service.validate_format(b"definitely not an image")

    def test_disguised_executable_rejected(self):
        with pytest.raises(ValidationError):
            self.service.validate_format(b"MZ\x90\x00" + b"\x00" * 100)

    # ── Size Validation ───────────────────────────────────────────────────

    def test_size_within_limit(self):
        self.service.validate_size(b"x" * 1000)

    def test_size_over_limit(self):
        with patch("shutterbox.services.file_service.settings") as mock_settings:
            mock_settings.max_file_size = 1024
            with pytest.raises(ValidationError, match="exceeds maximum"):
                self.service.validate_size(b"x" * 1025)

    def test_empty_file(self):
        with pytest.raises(ValidationError, match="empty"):
            self.service.validate_size(b"")

    # ── Keys ──────────────────────────────────────────────────────────────

    def test_resolve_path(self, temp_storage):
        path = self.service.resolve_path("content", "Xy3_a9Qk0bM")
        assert path.parent.name == "content"
        assert str(path).startswith(str(self.service.storage_root))

    @pytest.mark.parametrize(
        "location,key",
        [
            ("content", "../../etc/passwd"),
            ("content", "a/b"),
            ("content", ""),
            ("secrets", "abc"),
            ("..", "abc"),
        ],
    )
    def test_rejects_bad_keys(self, location, key):
        with pytest.raises(NotFoundError):
            self.service.resolve_path(location, key)


class TestFileStorage:

    @pytest.fixture(autouse=True)
    def service(self, temp_storage):
        self.service = FileService(storage_root=temp_storage)

    @pytest.mark.asyncio
    async def test_store_and_read(self, sample_image_bytes):
        path = await self.service.validate_and_store(sample_image_bytes, "content", "abc123")

        assert path.exists()
        assert path.parent.name == "content"
        assert await self.service.read_file("content", "abc123") == sample_image_bytes

    @pytest.mark.asyncio
    async def test_invalid_bytes_not_stored(self):
        with pytest.raises(ValidationError):
            await self.service.validate_and_store(b"nope", "content", "abc123")
        assert not (self.service.storage_root / "content" / "abc123").exists()

    @pytest.mark.asyncio
    async def test_read_missing(self):
        with pytest.raises(NotFoundError):
            await self.service.read_file("avatars", "missing")

    # ── Cleanup ───────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_cleanup_file_removes_file(self, tmp_path):
        test_file = tmp_path / "test.jpg"
        test_file.write_bytes(b"test content")

        await self.service.cleanup_file(str(test_file))
        assert not test_file.exists()

    @pytest.mark.asyncio
    async def test_cleanup_file_nonexistent(self, tmp_path):
        """cleanup_file should not raise for non-existent files."""
        await self.service.cleanup_file(str(tmp_path / "nonexistent.jpg"))
