"""
Database Session Management with Connection Pooling

This module handles async database connections using SQLAlchemy's async engine.
Uses a database abstraction layer to support different database backends.

Key Features:
- Database abstraction: SQLite by default, PostgreSQL selected from the URL
- Connection pooling: Configured per database type
- Session factory shared by the aggregate store
"""

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession as SQLModelAsyncSession

from visit_analytics.core.setting import settings
from visit_analytics.db.interface import DatabaseAdapter
from visit_analytics.db.postgres_adapter import PostgreSQLAdapter
from visit_analytics.db.sqlite_adapter import SQLiteAdapter


def get_database_adapter(database_url: str, timeout_seconds: float = 2.0) -> DatabaseAdapter:
    """
    Factory function to get the database adapter for a connection string.

    Returns:
        PostgreSQLAdapter for postgresql URLs, SQLiteAdapter otherwise
    """
    if database_url.startswith("postgresql"):
        return PostgreSQLAdapter(timeout_seconds=timeout_seconds)
    return SQLiteAdapter(timeout_seconds=timeout_seconds)


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker:
    """
    Create an async session factory bound to an engine.

    Sessions are configured with expire_on_commit=False so rows read inside
    a session stay usable after commit.
    """
    return async_sessionmaker(
        engine,
        class_=SQLModelAsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet (development and tests)."""
    # Imported for its side effect of registering the tables on the metadata
    from visit_analytics.db import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


db_adapter = get_database_adapter(settings.DATABASE_URL, settings.DATABASE_TIMEOUT_SECONDS)

engine = db_adapter.create_engine(settings.DATABASE_URL)

async_session_maker = create_session_maker(engine)
