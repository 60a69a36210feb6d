"""
ShutterBox Backend — User SQLAlchemy Model
============================================

What:  ORM model for `content.users`.
Who:   UserStore (create/read/delete), auth routes (login lookup).

Table Design:
    - username / email: unique; signup checks both before inserting and the
      constraints back that check up under concurrency
    - password: argon2 hash of (password + salt)
    - salt: per-user random hex, stored next to the hash
    - avatar: location key of the uploaded avatar (NULL until one is
      uploaded); display URLs are derived from it at read time
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from shutterbox.database import Base
from shutterbox.models.columns import Identifier


class User(Base):
    __tablename__ = "users"
    __table_args__ = {"schema": "content"}

    id: Mapped[int] = mapped_column(Identifier, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password: Mapped[str] = mapped_column(Text, nullable=False)
    salt: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    avatar: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}')>"
