"""
PostgreSQL Database Adapter

Server-based backend for production deployments. Uses asyncpg with a
regular connection pool and statement/command timeouts that match the
engine's "fail fast, log, move on" write path.
"""

from typing import Any, Optional, Sequence

from sqlalchemy import Table
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.pool import Pool
from sqlalchemy.sql.dml import Insert

from visit_analytics.db.interface import DatabaseAdapter


class PostgreSQLAdapter(DatabaseAdapter):
    """PostgreSQL (asyncpg) adapter."""

    def get_pool_class(self) -> Optional[type[Pool]]:
        # Default async queue pool
        return None

    def get_connect_args(self) -> dict[str, Any]:
        return {
            "timeout": self.timeout_seconds,
            "command_timeout": self.timeout_seconds,
        }

    def get_engine_kwargs(self) -> dict[str, Any]:
        return {
            "echo": False,
            "pool_size": 5,
            "max_overflow": 10,
            "pool_pre_ping": True,
            "pool_timeout": self.timeout_seconds,
        }

    def insert_or_ignore(
        self,
        table: Table,
        values: dict[str, Any],
        conflict_columns: Sequence[str]
    ) -> Insert:
        """INSERT ... ON CONFLICT (conflict_columns) DO NOTHING."""
        return (
            pg_insert(table)
            .values(**values)
            .on_conflict_do_nothing(index_elements=list(conflict_columns))
        )

    def supports_row_locks(self) -> bool:
        return True

    def get_dialect_name(self) -> str:
        return "postgresql"
