"""
ShutterBox Backend — Database Session Management
==================================================

What:  Async SQLAlchemy engine, session factory, FastAPI dependency and the
       `atomic()` transaction scope used by every write path.
How:   Creates an async engine with connection pooling, provides a session
       dependency that commits on success and rolls back on error.
Who:   Route handlers (via Depends), stores (via atomic()), Alembic, tests.

Schemas:
    All tables live in two schemas, `content` and `permissions`. On
    PostgreSQL they are real schemas created by the initial migration. On
    SQLite each schema is an attached database (see enable_sqlite_schemas).

Connection Pooling Strategy (PostgreSQL):
    pool_size=20, max_overflow=10, pool_pre_ping, pool_recycle=3600
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from shutterbox.config import settings
from shutterbox.exceptions import TransactionRollbackError

logger = logging.getLogger(__name__)

SCHEMAS = ("content", "permissions")


# ── SQLite Schema Emulation ───────────────────────────────────────────────
def _sqlite_schema_path(database: str | None, schema: str) -> str:
    """In-memory databases attach in-memory schemas; file databases get sibling files."""
    if not database or database == ":memory:":
        return ":memory:"
    return f"{database}.{schema}"


def enable_sqlite_schemas(engine: AsyncEngine) -> None:
    """
    Attach one SQLite database per schema on every new DBAPI connection.

    SQLite has no CREATE SCHEMA; `ATTACH DATABASE ... AS content` makes
    `content.images` resolvable with the same schema-qualified names the
    PostgreSQL deployment uses.
    """
    database = engine.url.database

    @event.listens_for(engine.sync_engine, "connect")
    def _attach_schemas(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        for schema in SCHEMAS:
            cursor.execute(
                f"ATTACH DATABASE '{_sqlite_schema_path(database, schema)}' AS {schema}"
            )
        cursor.close()


def _engine_options(url: str) -> dict:
    # SQLite pools reject pool_size/max_overflow
    if make_url(url).get_backend_name() == "sqlite":
        return {"echo": settings.log_level == "DEBUG"}
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_pre_ping": settings.db_pool_pre_ping,
        "pool_recycle": 3600,
        "echo": settings.log_level == "DEBUG",
    }


# ── Engine Configuration ──────────────────────────────────────────────────
engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

if engine.dialect.name == "sqlite":
    enable_sqlite_schemas(engine)

# ── Session Factory ───────────────────────────────────────────────────────
# expire_on_commit=False: aggregates are assembled after atomic() commits
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ── Base Model ────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""
    pass


# ── Transaction Scope ─────────────────────────────────────────────────────
@asynccontextmanager
async def atomic(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Run a block of writes as one all-or-nothing unit.

    How it works:
        1. Yields the session; the block issues its statements
        2. Block finished without error → explicit commit
        3. Block (or the commit) raised → rollback, then re-raise the
           original error unmodified
        4. Rollback itself raised → TransactionRollbackError carrying BOTH
           errors, chained from the original

    Every exit path ends with exactly one commit or one rollback; no write
    path ever leaves a transaction open.

    Example:
        async with atomic(db):
            db.add(row)
            await db.flush()
    """
    try:
        yield session
        await session.commit()
    except Exception as exc:
        try:
            await session.rollback()
        except Exception as rollback_exc:
            logger.error(
                "Rollback failed after %s: %s (rollback error: %s)",
                type(exc).__name__,
                exc,
                rollback_exc,
            )
            raise TransactionRollbackError(original=exc, rollback_error=rollback_exc) from exc
        logger.warning("Transaction rolled back: %s: %s", type(exc).__name__, exc)
        raise


# ── Session Dependency ────────────────────────────────────────────────────
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    How it works:
        1. Creates a new session from the factory
        2. Yields it to the route handler
        3. On success: commits whatever reads/writes remain open
        4. On error: rolls back
        5. Always: closes the session (returns connection to pool)

    Write paths commit on their own through atomic(); the commit here only
    closes out read transactions and single-statement updates.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── Lifecycle Helpers ─────────────────────────────────────────────────────
async def create_schema(bind: AsyncEngine = engine) -> None:
    """
    Create every table (and, on PostgreSQL, both schemas) if missing.

    Used by the `shutterbox-initdb` bootstrap and by the test suite;
    deployments use the Alembic migrations instead.
    """
    # Import models so they register with Base.metadata
    from shutterbox import models  # noqa: F401
    from sqlalchemy import text

    async with bind.begin() as conn:
        if conn.dialect.name == "postgresql":
            for schema in SCHEMAS:
                await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {schema}"))
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ready (%s)", bind.dialect.name)


async def dispose_engine() -> None:
    """Gracefully closes all connections in the pool (app shutdown)."""
    await engine.dispose()
