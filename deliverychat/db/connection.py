"""Database engine management for the delivery database.

The service talks to the delivery database through one SQLAlchemy async
engine whose connection pool is the only contended resource shared between
requests. The engine is created by the application lifespan and handed to
the query executor; nothing in this module keeps a global engine.

Usage:
    engine = create_engine(settings)
    await init_db(engine)   # development / tests only
    async with engine.connect() as conn:
        ...
    await engine.dispose()
"""

import logging
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from deliverychat.config import Settings
from deliverychat.db.models import Base

logger = logging.getLogger(__name__)


def create_engine(settings: Settings) -> AsyncEngine:
    """Create the pooled async engine for the configured database URL."""
    url = settings.database_url
    engine = create_async_engine(url, echo=settings.sql_echo, pool_pre_ping=True)

    if url.startswith("sqlite"):

        @event.listens_for(engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
            """Enable referential integrity (disabled by default in SQLite)."""
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    logger.info("Database engine created for dialect %s", engine.dialect.name)
    return engine


async def init_db(engine: AsyncEngine) -> None:
    """Create the delivery tables if they don't exist.

    Schema migration is out of scope; this exists for local development
    and tests.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Delivery tables ensured")

