"""
ShutterBox Backend — Transaction Scope Tests
==============================================

What:  atomic() ends every block with exactly one commit or one rollback.
How:   Mock sessions, so commit/rollback failures can be injected.

What we test:
    ✅ Clean exit commits
    ✅ Failing block rolls back and re-raises the original error
    ✅ Failing rollback raises TransactionRollbackError carrying both errors
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from shutterbox.database import _sqlite_schema_path, atomic
from shutterbox.exceptions import TransactionRollbackError


@pytest.fixture
def session():
    mock = MagicMock()
    mock.commit = AsyncMock()
    mock.rollback = AsyncMock()
    return mock


class TestAtomic:

    @pytest.mark.asyncio
    async def test_commits_on_success(self, session):
        async with atomic(session):
            pass
        session.commit.assert_awaited_once()
        session.rollback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rolls_back_and_reraises(self, session):
        with pytest.raises(RuntimeError, match="insert failed"):
            async with atomic(session):
                raise RuntimeError("insert failed")
        session.rollback.assert_awaited_once()
        session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_commit_rolls_back(self, session):
        session.commit.side_effect = RuntimeError("commit failed")
        with pytest.raises(RuntimeError, match="commit failed"):
            async with atomic(session):
                pass
        session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_rollback_reports_both(self, session):
        session.rollback.side_effect = ConnectionError("connection reset")
        with pytest.raises(TransactionRollbackError) as exc_info:
            async with atomic(session):
                raise RuntimeError("insert failed")

        err = exc_info.value
        assert isinstance(err.original, RuntimeError)
        assert isinstance(err.rollback_error, ConnectionError)
        assert err.__cause__ is err.original
        assert "insert failed" in err.context["original_error"]
        assert "connection reset" in err.context["rollback_error"]


def test_sqlite_schema_paths():
    assert _sqlite_schema_path(None, "content") == ":memory:"
    assert _sqlite_schema_path(":memory:", "content") == ":memory:"
    assert _sqlite_schema_path("/tmp/shutterbox.db", "permissions") == "/tmp/shutterbox.db.permissions"
