"""Apply an ``UpdatePlan`` to a live table.

One parameterized statement per row, through ``DatabaseClient.execute()``.
Inserts and updates bind only the descriptor's enabled columns; removals
either deactivate (``MarkInactive``) or delete (``Delete``/``TryDelete``)
by Id.

Failure policy:
- ``TryDelete``: a delete rejected by a reference constraint is recorded as
  ``skipped`` and reported as a warning; the remaining rows continue.
- Anything else aborts the table.  The error is reported, and
  ``TableSyncError`` carries the outcomes applied so far.  Statements are
  committed one at a time, so rows already applied stay applied.

An empty plan issues no statements and reports nothing.

Usage:
    from enum_to_sql.schema.executor import apply_plan

    result = await apply_plan(client, descriptor, plan, reporter)
    print(result.inserted, result.updated, result.removed)
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from enum_to_sql.exceptions import ForeignKeyViolationError, TableSyncError
from enum_to_sql.schema.models import ColumnRole, DeletionPolicy, EnumDescriptor, Row
from enum_to_sql.schema.planner import UpdatePlan
from enum_to_sql.schema.sql import deactivate_sql, delete_sql, insert_sql, update_sql

if TYPE_CHECKING:
    from enum_to_sql.adapters.base import DatabaseClient
    from enum_to_sql.reporting import Reporter

logger = logging.getLogger(__name__)


class RowAction(str, Enum):
    """What happened to one row."""

    INSERTED = "inserted"
    UPDATED = "updated"
    DELETED = "deleted"
    DEACTIVATED = "deactivated"
    SKIPPED = "skipped"


class RowOutcome(BaseModel):
    """Outcome of one row statement."""

    table: str
    row_id: int
    name: str
    action: RowAction
    message: str = ""


class TableSyncResult(BaseModel):
    """Result of one table pass.

    Attributes:
        table: Qualified ``schema.table`` name.
        success: Whether the pass completed.
        outcomes: Per-row outcomes in the order they were applied.
        error: Error message if the pass failed.
    """

    table: str
    success: bool = False
    outcomes: list[RowOutcome] = Field(default_factory=list)
    error: str | None = None

    def count(self, action: RowAction) -> int:
        return sum(1 for outcome in self.outcomes if outcome.action == action)

    @property
    def inserted(self) -> int:
        return self.count(RowAction.INSERTED)

    @property
    def updated(self) -> int:
        return self.count(RowAction.UPDATED)

    @property
    def removed(self) -> int:
        """Rows deleted or deactivated."""
        return self.count(RowAction.DELETED) + self.count(RowAction.DEACTIVATED)

    @property
    def skipped(self) -> int:
        return self.count(RowAction.SKIPPED)


# ------------------------------------------------------------------
# Parameter binding
# ------------------------------------------------------------------


def row_params(desc: EnumDescriptor, row: Row) -> dict[str, Any]:
    """Bind parameters for ``row``, one per enabled column, keyed by role."""
    values = {
        ColumnRole.ID: row.id,
        ColumnRole.NAME: row.name,
        ColumnRole.DISPLAY_NAME: row.display_name,
        ColumnRole.DESCRIPTION: row.description,
        ColumnRole.IS_ACTIVE: row.is_active,
    }
    return {col.role.value: values[col.role] for col in desc.columns}


def row_label(desc: EnumDescriptor, row: Row) -> str:
    """Name used to identify a row in messages."""
    if desc.has(ColumnRole.NAME) and row.name:
        return row.name
    return str(row.id)


def _record(
    result: TableSyncResult,
    reporter: Reporter,
    desc: EnumDescriptor,
    row: Row,
    action: RowAction,
    message: str,
) -> None:
    result.outcomes.append(
        RowOutcome(
            table=desc.qualified_name,
            row_id=row.id,
            name=row_label(desc, row),
            action=action,
            message=message,
        )
    )
    if action == RowAction.SKIPPED:
        reporter.warning(message)
    else:
        reporter.info(message)


# ------------------------------------------------------------------
# Public API
# ------------------------------------------------------------------


async def apply_plan(
    client: DatabaseClient,
    desc: EnumDescriptor,
    plan: UpdatePlan,
    reporter: Reporter,
) -> TableSyncResult:
    """Apply ``plan`` to the descriptor's table.

    Args:
        client: Open database client owning the table for this pass.
        desc: The enum's descriptor.
        plan: Plan from ``create_plan(desc, rows)``.
        reporter: Receives one message per row outcome.

    Returns:
        ``TableSyncResult`` with ``success=True`` and every row outcome.

    Raises:
        TableSyncError: If a statement fails for any reason other than a
            reference constraint under ``TryDelete``.
    """
    result = TableSyncResult(table=desc.qualified_name)

    if plan.is_empty:
        result.success = True
        return result

    with reporter.block(f"Updating {desc.qualified_name}"):
        try:
            await _apply_inserts(client, desc, plan, reporter, result)
            await _apply_updates(client, desc, plan, reporter, result)
            await _apply_removals(client, desc, plan, reporter, result)
        except Exception as exc:
            logger.debug("Table %s failed after %d rows", desc.qualified_name, len(result.outcomes))
            reporter.exception(exc)
            result.error = str(exc)
            raise TableSyncError(
                desc.qualified_name, str(exc), result.outcomes, is_reported=True
            ) from exc

    result.success = True
    return result


async def _apply_inserts(
    client: DatabaseClient,
    desc: EnumDescriptor,
    plan: UpdatePlan,
    reporter: Reporter,
    result: TableSyncResult,
) -> None:
    if not plan.to_insert:
        return
    sql = insert_sql(desc)
    for row in plan.to_insert:
        logger.debug("%s: %s", desc.qualified_name, sql)
        await client.execute(sql, row_params(desc, row))
        _record(result, reporter, desc, row, RowAction.INSERTED, f"Added {row_label(desc, row)}")


async def _apply_updates(
    client: DatabaseClient,
    desc: EnumDescriptor,
    plan: UpdatePlan,
    reporter: Reporter,
    result: TableSyncResult,
) -> None:
    if not plan.to_update:
        return
    sql = update_sql(desc)
    for row in plan.to_update:
        logger.debug("%s: %s", desc.qualified_name, sql)
        await client.execute(sql, row_params(desc, row))
        _record(result, reporter, desc, row, RowAction.UPDATED, f"Updated {row_label(desc, row)}")


async def _apply_removals(
    client: DatabaseClient,
    desc: EnumDescriptor,
    plan: UpdatePlan,
    reporter: Reporter,
    result: TableSyncResult,
) -> None:
    if not plan.to_remove:
        return

    policy = plan.deletion_policy
    if policy == DeletionPolicy.MARK_INACTIVE:
        sql = deactivate_sql(desc)
        action = RowAction.DEACTIVATED
        template = 'Marked deleted value "{}" as inactive'
    else:
        sql = delete_sql(desc)
        action = RowAction.DELETED
        template = "Deleted {}"

    id_param = desc.id_column.role.value
    for row in plan.to_remove:
        label = row_label(desc, row)
        logger.debug("%s: %s", desc.qualified_name, sql)
        try:
            await client.execute(sql, {id_param: row.id})
        except ForeignKeyViolationError:
            if policy != DeletionPolicy.TRY_DELETE:
                raise
            _record(
                result, reporter, desc, row, RowAction.SKIPPED,
                f"Attempted to delete {label}, but failed due to SQL constraints (probably a foreign key)",
            )
            continue
        _record(result, reporter, desc, row, action, template.format(label))
