"""
Database configuration and session management
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    AsyncEngine,
    async_sessionmaker,
    create_async_engine
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool, AsyncAdaptedQueuePool
from sqlalchemy import event, text
import logging

from seatkeeper.config import settings

logger = logging.getLogger(__name__)

# Create declarative base
Base = declarative_base()


def _set_sqlite_pragmas(dbapi_connection, connection_record):
    # Concurrent writers wait on the lock instead of failing immediately
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=10000")
    cursor.close()


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    SQLite (used for local runs and tests) gets a NullPool and WAL mode;
    everything else gets the pooled configuration from settings.
    """
    if url.startswith("sqlite"):
        async_engine = create_async_engine(url, echo=echo, poolclass=NullPool)
        event.listen(async_engine.sync_engine, "connect", _set_sqlite_pragmas)
        return async_engine

    if settings.is_testing:
        # NullPool doesn't accept pool parameters
        return create_async_engine(url, echo=echo, poolclass=NullPool)

    return create_async_engine(
        url,
        echo=echo,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        poolclass=AsyncAdaptedQueuePool,
    )


def build_session_factory(async_engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine: AsyncEngine = build_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)
async_session = build_session_factory(engine)


async def init_db(async_engine: AsyncEngine = None):
    """
    Create tables if they do not exist yet
    """
    # Register all models on the metadata
    import seatkeeper.models  # noqa: F401

    async_engine = async_engine or engine
    try:
        async with async_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


async def close_db():
    """
    Close database connections
    """
    await engine.dispose()
    logger.info("Database connections closed")


async def check_db(session_factory: async_sessionmaker = None) -> bool:
    """
    Readiness probe: run a trivial query
    """
    session_factory = session_factory or async_session
    try:
        async with session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            return result.scalar() == 1
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        return False
