"""
ShutterBox Backend — Permission Grant Tables
==============================================

What:  `permissions.can_edit`, `permissions.can_delete`, `permissions.can_view`.
       Each row is a (user_id, o_id, type) grant; type is 'image' or 'user'.
How:   user_id = EVERYONE (-1) grants the capability to every caller, so
       there is no foreign key to content.users.
Who:   PermissionService writes the default grants at creation time and
       answers capability checks for the route handlers.
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from shutterbox.database import Base
from shutterbox.models.columns import Identifier

EVERYONE = -1


class _Grant:
    user_id: Mapped[int] = mapped_column(Identifier, primary_key=True, autoincrement=False)
    o_id: Mapped[int] = mapped_column(Identifier, primary_key=True, autoincrement=False)
    type: Mapped[str] = mapped_column(String(16), primary_key=True)


class CanEdit(_Grant, Base):
    __tablename__ = "can_edit"
    __table_args__ = {"schema": "permissions"}


class CanDelete(_Grant, Base):
    __tablename__ = "can_delete"
    __table_args__ = {"schema": "permissions"}


class CanView(_Grant, Base):
    __tablename__ = "can_view"
    __table_args__ = {"schema": "permissions"}


GRANT_TABLES = {
    "edit": CanEdit,
    "delete": CanDelete,
    "view": CanView,
}
