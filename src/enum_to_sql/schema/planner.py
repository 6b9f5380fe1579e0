"""Diff planner: what must change to make a table match its enum.

Merges the enum's values (sorted by identity) against the table's rows
(sorted by id) with two cursors, an outer join on identity over two sorted
inputs.  Each identity lands in at most one list of the resulting
``UpdatePlan``:

- value without a row  -> ``to_insert``
- row without a value  -> ``to_remove`` (subject to the deletion policy)
- both, fields differ  -> ``to_update``

Pure logic -- no I/O.

Usage:
    from enum_to_sql.schema.planner import create_plan

    plan = create_plan(descriptor, rows)
    if plan.is_empty:
        print("Table is up to date")
"""

from dataclasses import dataclass
from typing import Sequence

from enum_to_sql.exceptions import PlanInvariantError
from enum_to_sql.schema.models import (
    ColumnRole,
    DeletionPolicy,
    EnumDescriptor,
    Row,
    ValueRecord,
)


@dataclass(frozen=True)
class UpdatePlan:
    """Rows to insert, update and remove for one table.

    Attributes:
        to_insert: Target rows for values with no persisted row.
        to_update: Target rows for values whose persisted row differs.
        to_remove: Persisted rows orphaned by the enum, to delete or
            deactivate according to ``deletion_policy``.
        deletion_policy: Policy the plan was built under.
    """

    to_insert: tuple[Row, ...] = ()
    to_update: tuple[Row, ...] = ()
    to_remove: tuple[Row, ...] = ()
    deletion_policy: DeletionPolicy = DeletionPolicy.MARK_INACTIVE

    @property
    def is_empty(self) -> bool:
        """True if there is nothing to apply."""
        return not (self.to_insert or self.to_update or self.to_remove)

    @property
    def change_count(self) -> int:
        """Total number of row statements the plan implies."""
        return len(self.to_insert) + len(self.to_update) + len(self.to_remove)


def should_remove(policy: DeletionPolicy, row: Row) -> bool:
    """Whether an orphaned row is queued for removal under ``policy``.

    Already-inactive orphans need nothing further under ``MarkInactive``.
    """
    if policy in (DeletionPolicy.DELETE, DeletionPolicy.TRY_DELETE):
        return True
    if policy == DeletionPolicy.MARK_INACTIVE:
        return row.is_active
    return False


def differs(desc: EnumDescriptor, value: ValueRecord, row: Row) -> bool:
    """True if any enabled column differs between ``value`` and ``row``."""
    if desc.has(ColumnRole.NAME) and value.name != row.name:
        return True
    if desc.has(ColumnRole.DISPLAY_NAME) and value.display_name != row.display_name:
        return True
    if desc.has(ColumnRole.DESCRIPTION) and value.description != row.description:
        return True
    if desc.has(ColumnRole.IS_ACTIVE) and value.is_active != row.is_active:
        return True
    return False


def create_plan(desc: EnumDescriptor, rows: Sequence[Row]) -> UpdatePlan:
    """Build the update plan for one table.

    Args:
        desc: Descriptor whose ``values`` are strictly ascending by identity.
        rows: Persisted rows, strictly ascending by id.

    Returns:
        A new ``UpdatePlan``.

    Raises:
        PlanInvariantError: If either input is not strictly ascending.

    Example:
        >>> plan = create_plan(descriptor, [])
        >>> len(plan.to_insert) == len(descriptor.values)
        True
    """
    values = desc.values
    policy = desc.deletion_policy
    _assert_ascending([v.identity for v in values], f"{desc.full_name} values")
    _assert_ascending([r.id for r in rows], f"{desc.qualified_name} rows")

    to_insert: list[Row] = []
    to_update: list[Row] = []
    to_remove: list[Row] = []

    vi = 0
    ri = 0
    while vi < len(values) or ri < len(rows):
        value = values[vi] if vi < len(values) else None
        row = rows[ri] if ri < len(rows) else None

        if row is None or (value is not None and row.id > value.identity):
            # value with no matching row
            to_insert.append(value.to_row())
            vi += 1
        elif value is None or value.identity > row.id:
            # row with no matching value
            if should_remove(policy, row):
                to_remove.append(row)
            ri += 1
        else:
            if differs(desc, value, row):
                to_update.append(value.to_row())
            vi += 1
            ri += 1

    return UpdatePlan(
        to_insert=tuple(to_insert),
        to_update=tuple(to_update),
        to_remove=tuple(to_remove),
        deletion_policy=policy,
    )


def _assert_ascending(ids: list[int], label: str) -> None:
    for prev, cur in zip(ids, ids[1:]):
        if cur <= prev:
            raise PlanInvariantError(
                f"{label} are not strictly ascending by identity ({prev} then {cur})"
            )
