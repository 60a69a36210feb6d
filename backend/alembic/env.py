"""
Alembic Migration Environment
===============================

The database URL comes from shutterbox.config, never from alembic.ini.
Only the `content` and `permissions` schemas are managed; anything else in
the database (PostGIS tables, other applications) is invisible to
--autogenerate.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import async_engine_from_config

from shutterbox import models  # noqa: F401
from shutterbox.config import settings
from shutterbox.database import SCHEMAS, Base

alembic_cfg = context.config
if alembic_cfg.config_file_name is not None:
    fileConfig(alembic_cfg.config_file_name)

alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url)


def include_name(name, type_, parent_names) -> bool:
    if type_ == "schema":
        return name in SCHEMAS
    return True


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=Base.metadata,
        include_schemas=True,
        include_name=include_name,
        compare_type=True,
        **kwargs,
    )


def _migrate(connection) -> None:
    _configure(connection=connection)
    with context.begin_transaction():
        context.run_migrations()


async def _migrate_online() -> None:
    engine = async_engine_from_config(
        alembic_cfg.get_section(alembic_cfg.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_migrate)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    # Emit SQL to stdout without connecting
    _configure(
        url=alembic_cfg.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()
else:
    asyncio.run(_migrate_online())
