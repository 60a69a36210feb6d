"""
ShutterBox Backend — Permission Service Tests
===============================================

What we test:
    ✅ Owners can edit/delete their objects, everyone can view
    ✅ Grants are scoped by object type
    ✅ require() raises UnauthorizedError when the grant is missing
    ✅ revoke_all removes all three grants
"""

import pytest

from conftest import count_rows
from shutterbox.exceptions import UnauthorizedError
from shutterbox.models import CanDelete, CanEdit, CanView
from shutterbox.services.permission_service import permission_service


class TestPermissionService:

    @pytest.mark.asyncio
    async def test_default_grants(self, db_session):
        await permission_service.grant_defaults(db_session, owner_id=7, object_id=100, object_type="image")
        await db_session.commit()

        assert await permission_service.is_authorized(db_session, 7, 100, "image", "edit")
        assert await permission_service.is_authorized(db_session, 7, 100, "image", "delete")
        assert not await permission_service.is_authorized(db_session, 8, 100, "image", "delete")
        # can_view is granted to everyone
        assert await permission_service.is_authorized(db_session, 8, 100, "image", "view")

    @pytest.mark.asyncio
    async def test_grants_scoped_by_type(self, db_session):
        await permission_service.grant_defaults(db_session, owner_id=7, object_id=100, object_type="image")
        await db_session.commit()

        assert not await permission_service.is_authorized(db_session, 7, 100, "user", "edit")
        assert not await permission_service.is_authorized(db_session, 7, 101, "image", "edit")

    @pytest.mark.asyncio
    async def test_require_raises(self, db_session):
        await permission_service.grant_defaults(db_session, owner_id=7, object_id=100, object_type="user")
        await db_session.commit()

        await permission_service.require(db_session, 7, 100, "user", "delete")
        with pytest.raises(UnauthorizedError) as exc_info:
            await permission_service.require(db_session, 9, 100, "user", "delete")
        assert exc_info.value.context["capability"] == "delete"

    @pytest.mark.asyncio
    async def test_revoke_all(self, db_session):
        await permission_service.grant_defaults(db_session, owner_id=7, object_id=100, object_type="image")
        await permission_service.grant_defaults(db_session, owner_id=7, object_id=200, object_type="image")
        await permission_service.revoke_all(db_session, 100, "image")
        await db_session.commit()

        for model in (CanEdit, CanDelete, CanView):
            assert await count_rows(db_session, model, model.o_id == 100) == 0
            assert await count_rows(db_session, model, model.o_id == 200) == 1
