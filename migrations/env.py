"""
Alembic environment configuration for async database migrations.

Runs the revisions under ``migrations/versions`` against the database named by
``APP_DATABASE_URL`` (asyncpg in deployed environments, aiosqlite locally).
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from storefront.core.config import get_settings
from storefront.core.logging import get_logger

# Importing the models package registers every table on Base.metadata
from storefront.database.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

settings = get_settings()
logger = get_logger(__name__)

target_metadata = Base.metadata

config.set_main_option("sqlalchemy.url", settings.database_url)
logger.info(
    "Database URL configured from environment",
    url_prefix=settings.database_url.split("://")[0],
)


def run_migrations_offline() -> None:
    """
    Emit migration SQL to stdout without connecting to a database.
    """
    url = config.get_main_option("sqlalchemy.url")
    if not url:
        logger.error("No database URL configured for offline migrations")
        raise ValueError("Database URL is required for migrations")

    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        render_as_batch=settings.is_sqlite,
    )

    with context.begin_transaction():
        context.run_migrations()
    logger.info("Offline migrations completed successfully")


def do_run_migrations(connection: Connection) -> None:
    """
    Execute migrations with the given connection.

    SQLite cannot ALTER constraints in place, so batch mode is enabled there.
    """
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        render_as_batch=connection.dialect.name == "sqlite",
        transaction_per_migration=True,
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """
    Run migrations in 'online' mode over an async engine.
    """
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    try:
        async with connectable.connect() as connection:
            await connection.run_sync(do_run_migrations)
    except Exception as e:
        logger.error(
            "Async migration failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise
    finally:
        await connectable.dispose()

    logger.info("Online migrations completed successfully")


def run_migrations_online() -> None:
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
