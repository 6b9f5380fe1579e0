"""Enum table models, schema reconciliation, diff planning and execution.

Provides the replication data model (``EnumDescriptor``, ``ValueRecord``,
``Row``), live schema checks (``check_schema``, ``reconcile_schema``), row
decoding (``read_rows``), diff planning (``create_plan``) and plan
execution (``apply_plan``).

Usage:
    from enum_to_sql.schema import reconcile_schema, read_rows
    from enum_to_sql.schema import create_plan, apply_plan
"""

from enum_to_sql.schema.executor import (
    RowAction,
    RowOutcome,
    TableSyncResult,
    apply_plan,
)
from enum_to_sql.schema.models import (
    ColumnDescriptor,
    ColumnRole,
    DeletionPolicy,
    EnumDescriptor,
    LiveColumn,
    Row,
    SqlType,
    ValueRecord,
)
from enum_to_sql.schema.planner import UpdatePlan, create_plan
from enum_to_sql.schema.reconciler import (
    SchemaCheckResult,
    check_schema,
    reconcile_schema,
)
from enum_to_sql.schema.snapshot import decode_identity, read_rows

__all__ = [
    "ColumnDescriptor",
    "ColumnRole",
    "DeletionPolicy",
    "EnumDescriptor",
    "LiveColumn",
    "Row",
    "SqlType",
    "ValueRecord",
    "check_schema",
    "reconcile_schema",
    "SchemaCheckResult",
    "decode_identity",
    "read_rows",
    "create_plan",
    "UpdatePlan",
    "apply_plan",
    "RowAction",
    "RowOutcome",
    "TableSyncResult",
]
