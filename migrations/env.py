"""
Alembic Environment Configuration

Configures Alembic for the visit analytics SQLModel metadata:
- Database URL comes from application settings
- Async driver URLs are mapped to their sync equivalents, since migrations
  run on a sync connection
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool
from sqlalchemy.engine import Connection
from sqlmodel import SQLModel

from visit_analytics.core.setting import settings
from visit_analytics.db import models  # noqa: F401  (registers tables for autogenerate)

config = context.config

SYNC_DRIVERS = {
    "sqlite+aiosqlite://": "sqlite://",
    "postgresql+asyncpg://": "postgresql+psycopg2://",
}


def sync_database_url(database_url: str) -> str:
    """Swap an async driver prefix for its sync counterpart."""
    for async_prefix, sync_prefix in SYNC_DRIVERS.items():
        if database_url.startswith(async_prefix):
            return sync_prefix + database_url[len(async_prefix):]
    return database_url


database_url = sync_database_url(settings.DATABASE_URL)
config.set_main_option("sqlalchemy.url", database_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = SQLModel.metadata


def run_migrations_offline() -> None:
    """Emit SQL to the script output without connecting."""
    context.configure(
        url=database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        render_as_batch=connection.dialect.name == "sqlite",
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = create_engine(database_url, poolclass=pool.NullPool)

    with connectable.connect() as connection:
        do_run_migrations(connection)

    connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
