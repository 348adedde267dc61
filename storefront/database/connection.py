"""
Database connection management with SQLAlchemy async engine.

Holds the process-wide engine and session factory, the ``get_session`` unit
of work helper and the FastAPI ``get_db`` dependency. PostgreSQL (asyncpg)
is used in deployed environments; SQLite (aiosqlite) backs local
development and the test suite.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from sqlalchemy import event, text
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from storefront.core.config import Settings, get_settings
from storefront.core.logging import get_logger

logger = get_logger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine(settings: Optional[Settings] = None) -> AsyncEngine:
    """
    Create async SQLAlchemy engine for the configured database.

    Args:
        settings: Settings to use, defaults to the cached application settings

    Returns:
        Configured async SQLAlchemy engine
    """
    settings = settings or get_settings()
    options: dict[str, Any] = {"echo": settings.db_echo}

    if settings.is_sqlite:
        options["poolclass"] = NullPool
    elif settings.is_testing:
        options["poolclass"] = NullPool
        options["connect_args"] = {"server_settings": {"application_name": settings.app_name}}
    else:
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
            pool_pre_ping=True,
            pool_recycle=3600,
            connect_args={
                "server_settings": {"application_name": settings.app_name},
                "command_timeout": 60,
                "timeout": 10,
            },
        )

    engine = create_async_engine(settings.database_url, **options)

    if settings.is_sqlite:
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

    logger.info(
        "Database engine created",
        dialect=engine.dialect.name,
        environment=settings.environment,
    )
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Build a session factory bound to ``engine``.

    Objects stay usable after commit; autoflush is disabled so that the
    services decide exactly when pending changes reach the database.
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_engine() -> AsyncEngine:
    """
    Get or create the global async database engine.

    Raises:
        RuntimeError: If engine initialization fails
    """
    global _engine

    if _engine is None:
        try:
            _engine = create_engine()
        except Exception as e:
            logger.error(
                "Failed to create database engine",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise RuntimeError(f"Database engine initialization failed: {e}") from e

    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the global session factory."""
    global _session_factory

    if _session_factory is None:
        _session_factory = create_session_factory(get_engine())
        logger.info("Database session factory created")

    return _session_factory


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Open a session that commits on success and rolls back on error.

    Services that manage their own transaction boundaries (checkout, webhook
    reconciliation) commit explicitly; the final commit here is then a no-op.

    Yields:
        Async database session
    """
    session = get_session_factory()()

    try:
        yield session
        await session.commit()
    except Exception as e:
        await session.rollback()
        logger.warning(
            "Database session rolled back",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise
    finally:
        await session.close()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency for database session injection.

    Yields:
        Async database session for request handling
    """
    async with get_session() as session:
        yield session


async def check_database_health(max_retries: int = 3, retry_delay: float = 1.0) -> bool:
    """
    Check database connectivity with retry logic.

    Args:
        max_retries: Maximum number of connection attempts
        retry_delay: Base delay between retries in seconds

    Returns:
        True if database is healthy, False otherwise
    """
    for attempt in range(max_retries):
        try:
            async with get_engine().connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except (OperationalError, DBAPIError) as e:
            logger.warning(
                "Database health check failed",
                attempt=attempt + 1,
                max_retries=max_retries,
                error=str(e),
            )
            if attempt < max_retries - 1:
                await asyncio.sleep(retry_delay * (2**attempt))
        except SQLAlchemyError as e:
            logger.error(
                "Database health check failed - SQLAlchemy error",
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

    logger.error("Database health check failed after all retries", max_retries=max_retries)
    return False


async def initialize_database() -> None:
    """
    Initialize database connection and verify connectivity.

    Raises:
        RuntimeError: If the database cannot be reached
    """
    logger.info("Initializing database connection")
    get_session_factory()

    if not await check_database_health(max_retries=5, retry_delay=2.0):
        raise RuntimeError("Database health check failed during initialization")

    logger.info("Database initialized successfully")


async def close_database_connections() -> None:
    """Dispose of the engine during application shutdown."""
    global _engine, _session_factory

    if _engine is not None:
        try:
            await _engine.dispose()
            logger.info("Database connections closed and engine disposed")
        finally:
            _engine = None
            _session_factory = None
