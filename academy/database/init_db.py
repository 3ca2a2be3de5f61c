"""
Database initialization and connection management.

This module provides functions for:
1. Creating the async engine and session factory
2. Creating the schema for development databases
3. Disposing the engine on shutdown
"""

from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from academy.common.logger import app_logger
from academy.database.base import Base

logger = app_logger.getChild("database.init_db")

# Global engine instance
_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker] = None


def get_session_factory() -> async_sessionmaker:
    """Get the global async session factory."""
    if _session_factory is None:
        raise RuntimeError("Database engine not initialized. Call initialize_database() first.")
    return _session_factory


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables known to the metadata (development and tests)."""
    # Register the ORM models on the metadata
    from academy.assessments.quiz import database_models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema created")


async def initialize_database(
    database_url: str,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    create_tables: bool = False,
) -> AsyncEngine:
    """
    Initialize the async database engine.

    Args:
        database_url: Database connection URL
        echo: Whether to echo SQL statements
        pool_size: Connection pool size
        max_overflow: Maximum number of connections to allow above pool_size
        pool_timeout: Timeout for getting a connection from the pool
        create_tables: Create missing tables instead of relying on migrations

    Returns:
        AsyncEngine instance
    """
    global _engine, _session_factory

    try:
        logger.info(f"Initializing database with URL: {database_url[:10]}... and pool size: {pool_size}")

        engine_options = {"echo": echo}
        if not database_url.startswith("sqlite"):
            engine_options.update(
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=pool_timeout,
            )

        _engine = create_async_engine(database_url, **engine_options)
        _session_factory = create_session_factory(_engine)

        async with _engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

        if create_tables:
            await create_schema(_engine)

        logger.info("Database engine initialized successfully")
        return _engine

    except Exception as e:
        logger.error(f"Failed to initialize async database: {str(e)}")
        raise


async def close_database() -> None:
    """Close the database engine and all connections."""
    global _engine, _session_factory

    if _engine:
        try:
            await _engine.dispose()
            logger.info("Database engine closed successfully")
        except Exception as e:
            logger.error(f"Error closing database engine: {str(e)}")
            raise
        finally:
            _engine = None
            _session_factory = None
