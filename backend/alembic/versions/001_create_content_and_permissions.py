"""Create content and permissions schemas

Revision ID: 001
Revises: None
Create Date: 2024-03-02 09:40:00.000000+00:00

What:  Creates the `content` schema (users, images and their facets, shared
       reference data, bridges, social graph) and the `permissions` schema
       (can_edit, can_delete, can_view).
Rollback: downgrade() drops both schemas' tables (destructive).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

CONTENT = "content"
PERMISSIONS = "permissions"


def _image_fk() -> sa.Column:
    return sa.Column(
        "image_id",
        sa.BigInteger(),
        sa.ForeignKey("content.images.id", ondelete="CASCADE"),
        primary_key=True,
    )


def upgrade() -> None:
    op.execute(f"CREATE SCHEMA IF NOT EXISTS {CONTENT}")
    op.execute(f"CREATE SCHEMA IF NOT EXISTS {PERMISSIONS}")

    # ── Users and images ──────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), sa.Identity(), primary_key=True),
        sa.Column("username", sa.String(64), nullable=False, unique=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("password", sa.Text(), nullable=False, comment="argon2 hash of password + salt"),
        sa.Column("salt", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("avatar", sa.String(255), nullable=True, comment="Storage key under /avatars"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        schema=CONTENT,
    )

    op.create_table(
        "images",
        sa.Column("id", sa.BigInteger(), sa.Identity(), primary_key=True),
        sa.Column(
            "owner_id",
            sa.BigInteger(),
            sa.ForeignKey("content.users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("shortcode", sa.String(32), nullable=False, unique=True),
        sa.Column(
            "publish_time",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column("featured", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("views", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("downloads", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("favorites", sa.Integer(), nullable=False, server_default=sa.text("0")),
        schema=CONTENT,
    )
    op.create_index(
        "idx_images_publish_time",
        "images",
        [sa.text("publish_time DESC")],
        schema=CONTENT,
    )
    op.create_index("idx_images_owner", "images", ["owner_id"], schema=CONTENT)

    op.create_table(
        "image_metadata",
        _image_fk(),
        sa.Column("aperture", sa.Float(), nullable=True),
        sa.Column("exposure_time", sa.String(32), nullable=True),
        sa.Column("focal_length", sa.Float(), nullable=True),
        sa.Column("iso", sa.Integer(), nullable=True),
        sa.Column("make", sa.String(128), nullable=True),
        sa.Column("model", sa.String(128), nullable=True),
        sa.Column("lens_make", sa.String(128), nullable=True),
        sa.Column("lens_model", sa.String(128), nullable=True),
        sa.Column("pixel_xd", sa.Integer(), nullable=True),
        sa.Column("pixel_yd", sa.Integer(), nullable=True),
        sa.Column("capture_time", sa.DateTime(timezone=True), nullable=True),
        schema=CONTENT,
    )

    op.create_table(
        "image_geo",
        _image_fk(),
        sa.Column("loc", sa.Text(), nullable=True, comment="EWKT: SRID=4326;POINT(lng lat)"),
        sa.Column("dir", sa.Float(), nullable=True),
        schema=CONTENT,
    )

    # ── Shared reference data ─────────────────────────────────────────────
    op.create_table(
        "landmarks",
        sa.Column("id", sa.BigInteger(), sa.Identity(), primary_key=True),
        sa.Column("desc", sa.String(255), nullable=False),
        sa.Column("location", sa.Text(), nullable=True),
        sa.UniqueConstraint("desc", name="uq_landmarks_desc"),
        schema=CONTENT,
    )
    op.create_table(
        "colors",
        sa.Column("id", sa.BigInteger(), sa.Identity(), primary_key=True),
        sa.Column("red", sa.Integer(), nullable=False),
        sa.Column("green", sa.Integer(), nullable=False),
        sa.Column("blue", sa.Integer(), nullable=False),
        sa.Column("hue", sa.Float(), nullable=False),
        sa.Column("saturation", sa.Float(), nullable=False),
        sa.Column("val", sa.Float(), nullable=False),
        sa.Column("shade", sa.String(32), nullable=True),
        sa.Column("color", sa.String(64), nullable=True),
        sa.UniqueConstraint("red", "green", "blue", name="uq_colors_rgb"),
        schema=CONTENT,
    )
    op.create_table(
        "labels",
        sa.Column("id", sa.BigInteger(), sa.Identity(), primary_key=True),
        sa.Column("description", sa.String(255), nullable=False),
        sa.UniqueConstraint("description", name="uq_labels_description"),
        schema=CONTENT,
    )
    op.create_table(
        "image_tags",
        sa.Column("id", sa.BigInteger(), sa.Identity(), primary_key=True),
        sa.Column("description", sa.String(255), nullable=False),
        sa.UniqueConstraint("description", name="uq_image_tags_description"),
        schema=CONTENT,
    )

    # ── Bridges ───────────────────────────────────────────────────────────
    op.create_table(
        "image_landmark_bridge",
        _image_fk(),
        sa.Column("landmark_id", sa.BigInteger(), sa.ForeignKey("content.landmarks.id"), primary_key=True),
        sa.Column("score", sa.Float(), nullable=False, server_default=sa.text("0")),
        schema=CONTENT,
    )
    op.create_table(
        "image_color_bridge",
        _image_fk(),
        sa.Column("color_id", sa.BigInteger(), sa.ForeignKey("content.colors.id"), primary_key=True),
        sa.Column("pixel_fraction", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("score", sa.Float(), nullable=False, server_default=sa.text("0")),
        schema=CONTENT,
    )
    op.create_table(
        "image_label_bridge",
        _image_fk(),
        sa.Column("label_id", sa.BigInteger(), sa.ForeignKey("content.labels.id"), primary_key=True),
        sa.Column("score", sa.Float(), nullable=False, server_default=sa.text("0")),
        schema=CONTENT,
    )
    op.create_table(
        "image_tag_bridge",
        _image_fk(),
        sa.Column("tag_id", sa.BigInteger(), sa.ForeignKey("content.image_tags.id"), primary_key=True),
        schema=CONTENT,
    )

    # ── Social graph ──────────────────────────────────────────────────────
    op.create_table(
        "user_favorites",
        sa.Column(
            "user_id",
            sa.BigInteger(),
            sa.ForeignKey("content.users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        _image_fk(),
        schema=CONTENT,
    )
    op.create_table(
        "user_follows",
        sa.Column(
            "user_id",
            sa.BigInteger(),
            sa.ForeignKey("content.users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "followed_id",
            sa.BigInteger(),
            sa.ForeignKey("content.users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        schema=CONTENT,
    )

    # ── Permission grants (user_id -1 = everyone, so no FK) ───────────────
    for table in ("can_edit", "can_delete", "can_view"):
        op.create_table(
            table,
            sa.Column("user_id", sa.BigInteger(), primary_key=True),
            sa.Column("o_id", sa.BigInteger(), primary_key=True),
            sa.Column("type", sa.String(16), primary_key=True),
            schema=PERMISSIONS,
        )


def downgrade() -> None:
    for table in ("can_view", "can_delete", "can_edit"):
        op.drop_table(table, schema=PERMISSIONS)
    for table in (
        "user_follows",
        "user_favorites",
        "image_tag_bridge",
        "image_label_bridge",
        "image_color_bridge",
        "image_landmark_bridge",
        "image_tags",
        "labels",
        "colors",
        "landmarks",
        "image_geo",
        "image_metadata",
    ):
        op.drop_table(table, schema=CONTENT)
    op.drop_index("idx_images_owner", table_name="images", schema=CONTENT)
    op.drop_index("idx_images_publish_time", table_name="images", schema=CONTENT)
    op.drop_table("images", schema=CONTENT)
    op.drop_table("users", schema=CONTENT)
