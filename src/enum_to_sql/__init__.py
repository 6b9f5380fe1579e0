"""enum-to-sql: Replicate Python enums into SQL Server tables.

Each enum marked with ``@replicate`` gets a table holding one row per
member.  Rows are inserted, updated, and deleted or marked inactive so the
table matches the code, and the table is created on first run.

Usage:
    from enum_to_sql import replicate, EnumToSqlReplicator, make_reporter
    from enum_to_sql import describe_enum, EnumDescriptor, DeletionPolicy
    from enum_to_sql import load_config, resolve_url
"""

__version__ = "0.1.0"

# Adapters
from enum_to_sql.adapters.base import DatabaseClient, TableSnapshot
from enum_to_sql.adapters.mssql import AsyncSqlServerAdapter

# Config
from enum_to_sql.config.loader import load_config, resolve_url
from enum_to_sql.config.models import EnumToSqlConfig, TargetProfile

# Discovery
from enum_to_sql.discovery import ReplicationConfig, describe_enum, find_enums, replicate

# Errors
from enum_to_sql.exceptions import (
    ConfigurationError,
    DatabaseUpdateError,
    EnumToSqlError,
    ForeignKeyViolationError,
    SchemaMismatchError,
    TableSyncError,
)

# Replication
from enum_to_sql.replicator import DatabaseResult, EnumToSqlReplicator
from enum_to_sql.reporting import ConsoleReporter, Reporter, TeamCityReporter, make_reporter

# Schema
from enum_to_sql.schema.models import DeletionPolicy, EnumDescriptor, ValueRecord

__all__ = [
    # Adapters
    "DatabaseClient",
    "TableSnapshot",
    "AsyncSqlServerAdapter",
    # Config
    "load_config",
    "resolve_url",
    "EnumToSqlConfig",
    "TargetProfile",
    # Discovery
    "replicate",
    "ReplicationConfig",
    "describe_enum",
    "find_enums",
    # Errors
    "EnumToSqlError",
    "ConfigurationError",
    "SchemaMismatchError",
    "ForeignKeyViolationError",
    "TableSyncError",
    "DatabaseUpdateError",
    # Replication
    "EnumToSqlReplicator",
    "DatabaseResult",
    "Reporter",
    "ConsoleReporter",
    "TeamCityReporter",
    "make_reporter",
    # Schema
    "DeletionPolicy",
    "EnumDescriptor",
    "ValueRecord",
]
