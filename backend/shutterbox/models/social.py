"""
ShutterBox Backend — Social Graph Tables
==========================================

What:  `content.user_favorites` (user → image) and `content.user_follows`
       (user → followed user). Composite primary keys make a repeated
       favorite/follow an IntegrityError, surfaced as 409.
"""

from sqlalchemy import ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from shutterbox.database import Base
from shutterbox.models.columns import Identifier


class UserFavorite(Base):
    __tablename__ = "user_favorites"
    __table_args__ = {"schema": "content"}

    user_id: Mapped[int] = mapped_column(
        Identifier, ForeignKey("content.users.id", ondelete="CASCADE"), primary_key=True
    )
    image_id: Mapped[int] = mapped_column(
        Identifier, ForeignKey("content.images.id", ondelete="CASCADE"), primary_key=True
    )


class UserFollow(Base):
    __tablename__ = "user_follows"
    __table_args__ = {"schema": "content"}

    user_id: Mapped[int] = mapped_column(
        Identifier, ForeignKey("content.users.id", ondelete="CASCADE"), primary_key=True
    )
    followed_id: Mapped[int] = mapped_column(
        Identifier, ForeignKey("content.users.id", ondelete="CASCADE"), primary_key=True
    )
