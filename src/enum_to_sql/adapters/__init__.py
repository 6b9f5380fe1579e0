"""Database adapters package.

Provides the ``DatabaseClient`` Protocol and the async SQL Server adapter.

Usage:
    from enum_to_sql.adapters import DatabaseClient, AsyncSqlServerAdapter
"""

from enum_to_sql.adapters.base import DatabaseClient, TableSnapshot
from enum_to_sql.adapters.mssql import AsyncSqlServerAdapter

__all__ = [
    "DatabaseClient",
    "TableSnapshot",
    "AsyncSqlServerAdapter",
]
