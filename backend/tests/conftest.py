"""
ShutterBox Backend — Test Configuration (conftest.py)
=======================================================

Fixture Hierarchy (all function-scoped):
    ├── db_engine:        fresh in-memory SQLite with `content` and
    │                     `permissions` attached and every table created
    ├── db_session:       AsyncSession on db_engine
    ├── client:           httpx AsyncClient over ASGITransport, with
    │                     get_db_session pointed at db_engine
    ├── temp_storage:     per-test storage directory
    ├── sample_image_bytes / sample_png_bytes: real Pillow-encoded images
    └── make_user / make_image: factories writing through the stores
"""

import io
import os
import tempfile

# Settings are read at import time; configure the environment first
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["GEMINI_API_KEY"] = ""
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="shutterbox_test_")
os.environ["CONTENT_BASE_URL"] = "https://cdn.test/files"
os.environ["JWT_SECRET"] = "test-secret-for-the-suite-only-0123456789"
os.environ["RETRY_MAX_ATTEMPTS"] = "1"
os.environ["RATE_LIMIT_REQUESTS"] = "100000"
os.environ["LOG_LEVEL"] = "WARNING"

from datetime import datetime, timezone  # noqa: E402
from typing import List, Optional  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from PIL import Image as PILImage  # noqa: E402
from sqlalchemy import func, select  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from shutterbox.database import create_schema, enable_sqlite_schemas, get_db_session  # noqa: E402
from shutterbox.schemas.image import (  # noqa: E402
    HSV,
    SRGB,
    Color,
    GeoPoint,
    Image,
    ImageMetadata,
    Label,
    Landmark,
)
from shutterbox.schemas.user import NewUser  # noqa: E402
from shutterbox.services.auth_service import hash_password  # noqa: E402
from shutterbox.services.image_store import image_store  # noqa: E402
from shutterbox.services.user_store import user_store  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Database
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_engine():
    """One in-memory database per test; StaticPool keeps it on a single connection."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_schemas(engine)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


async def count_rows(db: AsyncSession, model, *criteria) -> int:
    stmt = select(func.count()).select_from(model)
    if criteria:
        stmt = stmt.where(*criteria)
    return (await db.execute(stmt)).scalar_one()


# ══════════════════════════════════════════════════════════════════════════
# HTTP client
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def client(session_factory):
    """
    AsyncClient against the real app; each request gets its own session on
    the test database.
    """
    from shutterbox.main import app

    async def override_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()


# ══════════════════════════════════════════════════════════════════════════
# Files
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def temp_storage(tmp_path):
    storage_dir = tmp_path / "storage"
    storage_dir.mkdir()
    return str(storage_dir)


def encode_image(fmt: str = "JPEG", size=(64, 48), colors=((200, 30, 30), (30, 30, 200))) -> bytes:
    """Left half in the first color, right half in the second."""
    img = PILImage.new("RGB", size, colors[0])
    img.paste(colors[1], (size[0] // 2, 0, size[0], size[1]))
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def sample_image_bytes():
    return encode_image("JPEG")


@pytest.fixture
def sample_png_bytes():
    return encode_image("PNG")


# ══════════════════════════════════════════════════════════════════════════
# Domain factories
# ══════════════════════════════════════════════════════════════════════════

def build_color(r: int, g: int, b: int, fraction: float = 0.5) -> Color:
    return Color(
        srgb=SRGB(r=r, g=g, b=b),
        hsv=HSV(h=0.0, s=1.0, v=1.0),
        shade="medium",
        color_name="red",
        pixel_fraction=fraction,
        score=fraction,
    )


def build_image(
    owner_id: int,
    shortcode: str,
    publish_time: Optional[datetime] = None,
    featured: bool = False,
    landmarks: Optional[List[Landmark]] = None,
    colors: Optional[List[Color]] = None,
    labels: Optional[List[Label]] = None,
    tags: Optional[List[str]] = None,
) -> Image:
    return Image(
        owner_id=owner_id,
        shortcode=shortcode,
        publish_time=publish_time,
        featured=featured,
        metadata=ImageMetadata(
            aperture=2.8,
            exposure_time="1/250",
            focal_length=35.0,
            iso=200,
            make="Fujifilm",
            model="X100V",
            pixel_xd=6000,
            pixel_yd=4000,
            location=GeoPoint(coordinates=[-122.4194, 37.7749]),
            image_direction=270.5,
        ),
        landmarks=landmarks or [],
        colors=colors or [],
        labels=labels or [],
        tags=tags or [],
    )


@pytest.fixture
def make_user(db_session):
    async def _make(username: str = "alice", email: Optional[str] = None, password: str = "correct-horse") -> int:
        password_hash, salt = hash_password(password)
        return await user_store.create_user(
            db_session,
            NewUser(
                username=username,
                email=email or f"{username}@example.com",
                password=password_hash,
                salt=salt,
            ),
        )
    return _make


@pytest.fixture
def make_image(db_session):
    async def _make(owner_id: int, shortcode: str, **kwargs) -> int:
        return await image_store.create_image(db_session, build_image(owner_id, shortcode, **kwargs))
    return _make


def utc(year: int, month: int = 1, day: int = 1, hour: int = 0) -> datetime:
    return datetime(year, month, day, hour, tzinfo=timezone.utc)
