"""
Database Abstraction Interface

The durable statistics store runs on SQLite in development and tests and on
PostgreSQL in production. Everything dialect-specific the aggregate store
needs lives behind DatabaseAdapter:

- engine construction (pool, connect timeouts)
- the insert-or-ignore statement that creates a day's row exactly once
- whether SELECT ... FOR UPDATE actually locks a row

To add a backend, subclass DatabaseAdapter and teach
get_database_adapter() in session.py to pick it from the URL.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

from sqlalchemy import Table
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import Pool
from sqlalchemy.sql.dml import Insert


class DatabaseAdapter(ABC):
    """
    Dialect adapter for the daily statistics table.

    Args:
        timeout_seconds: Connect/lock wait budget. Kept short so a stalled
            database degrades the write path to a logged warning.
    """

    def __init__(self, timeout_seconds: float = 2.0):
        self.timeout_seconds = timeout_seconds

    def create_engine(self, database_url: str, **kwargs) -> AsyncEngine:
        """
        Create the async engine with this dialect's pool and connect args.

        Keyword arguments override the adapter's engine defaults.
        """
        engine_kwargs = self.get_engine_kwargs()
        engine_kwargs.update(kwargs)
        pool_class = self.get_pool_class()
        if pool_class is not None:
            engine_kwargs["poolclass"] = pool_class

        engine = create_async_engine(
            database_url,
            connect_args=self.get_connect_args(),
            **engine_kwargs
        )
        self.configure_engine(engine)
        return engine

    def configure_engine(self, engine: AsyncEngine) -> None:
        """Hook for per-connection setup (event listeners, pragmas)."""

    @abstractmethod
    def get_pool_class(self) -> Optional[type[Pool]]:
        """Pool class to use, or None for SQLAlchemy's default."""

    @abstractmethod
    def get_connect_args(self) -> dict[str, Any]:
        pass

    @abstractmethod
    def get_engine_kwargs(self) -> dict[str, Any]:
        pass

    @abstractmethod
    def insert_or_ignore(
        self,
        table: Table,
        values: dict[str, Any],
        conflict_columns: Sequence[str]
    ) -> Insert:
        """
        INSERT that does nothing when a row with the same unique key exists.

        Concurrent first writers for a day both run this; exactly one row
        results and neither fails.
        """

    @abstractmethod
    def supports_row_locks(self) -> bool:
        """True when SELECT ... FOR UPDATE takes a row lock on this dialect."""

    @abstractmethod
    def get_dialect_name(self) -> str:
        pass
