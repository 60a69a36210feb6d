"""
ShutterBox Backend — Permission Grants and Authorization
==========================================================

What:  Writes the default grants for new objects and answers
       "may user U <capability> object O of type T?".
Who:   ImageStore / UserStore (grants, inside their atomic() scopes) and
       route handlers (checks, before deletes and social writes).

Default grants at creation time:
    owner      → can_edit, can_delete
    EVERYONE   → can_view
For users the owner is the user itself.
"""

import logging
from typing import Literal

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shutterbox.exceptions import UnauthorizedError
from shutterbox.models import CanDelete, CanEdit, CanView, GRANT_TABLES
from shutterbox.models.permission import EVERYONE

logger = logging.getLogger(__name__)

ObjectType = Literal["image", "user"]
Capability = Literal["edit", "delete", "view"]


class PermissionService:
    """Stateless; every call receives the session it should use."""

    async def grant_defaults(
        self,
        db: AsyncSession,
        owner_id: int,
        object_id: int,
        object_type: ObjectType,
    ) -> None:
        """Stage the three default grants. The caller's atomic() commits them."""
        db.add_all([
            CanEdit(user_id=owner_id, o_id=object_id, type=object_type),
            CanDelete(user_id=owner_id, o_id=object_id, type=object_type),
            CanView(user_id=EVERYONE, o_id=object_id, type=object_type),
        ])
        await db.flush()

    async def revoke_all(
        self,
        db: AsyncSession,
        object_id: int,
        object_type: ObjectType,
    ) -> None:
        """Remove every grant on an object (used when the object is deleted)."""
        for model in GRANT_TABLES.values():
            await db.execute(
                delete(model).where(model.o_id == object_id, model.type == object_type)
            )

    async def is_authorized(
        self,
        db: AsyncSession,
        user_id: int,
        object_id: int,
        object_type: ObjectType,
        capability: Capability,
    ) -> bool:
        model = GRANT_TABLES[capability]
        try:
            result = await db.execute(
                select(model.user_id)
                .where(
                    model.o_id == object_id,
                    model.type == object_type,
                    model.user_id.in_([user_id, EVERYONE]),
                )
                .limit(1)
            )
        except SQLAlchemyError as e:
            logger.error(
                "Permission lookup failed (user=%s, %s %s, can_%s): %s",
                user_id, object_type, object_id, capability, e,
            )
            raise
        return result.scalar_one_or_none() is not None

    async def require(
        self,
        db: AsyncSession,
        user_id: int,
        object_id: int,
        object_type: ObjectType,
        capability: Capability,
    ) -> None:
        """Raises UnauthorizedError (401) when the grant is missing."""
        if not await self.is_authorized(db, user_id, object_id, object_type, capability):
            logger.info(
                "Denied: user %s lacks can_%s on %s %s",
                user_id, capability, object_type, object_id,
            )
            raise UnauthorizedError(
                message=f"You are not allowed to {capability} this {object_type}",
                context={"object_id": object_id, "capability": capability},
            )


permission_service = PermissionService()
