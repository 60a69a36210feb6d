"""
ShutterBox Backend — Database Bootstrap
=========================================

What:  `shutterbox-initdb` console script. Creates both schemas and every
       table on the configured database, for local development and fresh
       single-node installs. Managed deployments run `alembic upgrade head`.
"""

import asyncio
import logging
import sys

from shutterbox.config import settings
from shutterbox.database import create_schema, dispose_engine

logger = logging.getLogger("shutterbox.initdb")


async def _run() -> None:
    try:
        await create_schema()
    finally:
        await dispose_engine()


def main() -> int:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stdout,
    )
    logger.info("Initializing database at %s", settings.database_url.rsplit("@", 1)[-1])
    asyncio.run(_run())
    logger.info("Done.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
