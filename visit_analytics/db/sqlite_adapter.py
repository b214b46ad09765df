"""
SQLite Database Adapter

Used for local development, tests and single-instance deployments.

SQLite allows one writer at a time on the whole file. Two settings keep the
visit mirror and the reconciler from tripping over each other:
- WAL journaling, so dashboard reads never wait on a writer
- a short busy timeout, so a writer waits briefly for the file lock and
  then fails (the caller logs it) instead of stalling a request

There are no row locks: a write transaction already holds the database
lock, which gives the estimator merge the isolation it needs.
"""

from typing import Any, Sequence

from sqlalchemy import Table, event
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.pool import NullPool
from sqlalchemy.sql.dml import Insert

from visit_analytics.db.interface import DatabaseAdapter


class SQLiteAdapter(DatabaseAdapter):
    """SQLite (aiosqlite) adapter."""

    def configure_engine(self, engine: AsyncEngine) -> None:
        @event.listens_for(engine.sync_engine, "connect")
        def _set_sqlite_pragmas(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

    def get_pool_class(self) -> type[NullPool]:
        # One connection per session; the file itself is the shared resource
        return NullPool

    def get_connect_args(self) -> dict[str, Any]:
        return {
            "check_same_thread": False,
            "timeout": self.timeout_seconds,
        }

    def get_engine_kwargs(self) -> dict[str, Any]:
        return {"echo": False}

    def insert_or_ignore(
        self,
        table: Table,
        values: dict[str, Any],
        conflict_columns: Sequence[str]
    ) -> Insert:
        """INSERT ... ON CONFLICT (conflict_columns) DO NOTHING."""
        return (
            sqlite_insert(table)
            .values(**values)
            .on_conflict_do_nothing(index_elements=list(conflict_columns))
        )

    def supports_row_locks(self) -> bool:
        return False

    def get_dialect_name(self) -> str:
        return "sqlite"
