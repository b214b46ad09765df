"""
Database module with abstraction layer.

This module provides:
- DatabaseAdapter interface: Abstract base class for database implementations
- SQLiteAdapter / PostgreSQLAdapter: dialect-specific implementations
- Session management: Database session creation and management

To add a new database backend:
1. Create a new adapter class inheriting from DatabaseAdapter
2. Implement all abstract methods
3. Update get_database_adapter() in session.py to return the new adapter
"""

from visit_analytics.db.interface import DatabaseAdapter
from visit_analytics.db.session import (
    async_session_maker,
    create_session_maker,
    create_tables,
    db_adapter,
    engine,
    get_database_adapter,
)

__all__ = [
    "DatabaseAdapter",
    "async_session_maker",
    "create_session_maker",
    "create_tables",
    "db_adapter",
    "engine",
    "get_database_adapter",
]
