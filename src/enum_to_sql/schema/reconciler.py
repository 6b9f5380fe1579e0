"""Live schema reconciliation for enum tables.

Checks that the physical columns of a table match the descriptor's enabled
columns exactly: same count, every physical column not nullable, not an
identity column, and matched by name to exactly one enabled column whose
type and size agree.  Pure logic -- no I/O.

There is no best-effort mapping: any problem fails the whole table.

Usage:
    from enum_to_sql.schema.reconciler import check_schema, reconcile_schema

    result = check_schema(descriptor, snapshot.columns)
    if not result.valid:
        print(result.format_report())

    mapping = reconcile_schema(descriptor, snapshot.columns)  # raises on mismatch
"""

from pydantic import BaseModel, Field

from enum_to_sql.exceptions import SchemaMismatchError
from enum_to_sql.schema.models import (
    ColumnDescriptor,
    ColumnRole,
    EnumDescriptor,
    LiveColumn,
)

# Physical ordinal per logical role
ColumnMapping = dict[ColumnRole, int]


class SchemaCheckResult(BaseModel):
    """Result of comparing a live table with its descriptor.

    Example:
        >>> result = SchemaCheckResult(valid=True, table="dbo.Status")
        >>> result.format_report()
        'Schema valid: dbo.Status'
    """

    valid: bool
    table: str
    expected: list[str] = Field(default_factory=list)
    observed: list[str] = Field(default_factory=list)
    problems: list[str] = Field(default_factory=list)
    mapping: ColumnMapping = Field(default_factory=dict)

    def format_report(self) -> str:
        """Format the result as a human-readable report."""
        if self.valid:
            return f"Schema valid: {self.table}"

        lines = [f"Schema mismatch: {self.table}"]
        lines.append("  Expected columns:")
        lines.extend(f"    - {shape}" for shape in self.expected)
        lines.append("  Observed columns:")
        lines.extend(f"    - {shape}" for shape in self.observed or ["(none)"])
        lines.append(f"  Problems ({len(self.problems)}):")
        lines.extend(f"    - {problem}" for problem in self.problems)
        return "\n".join(lines)


def expected_type(column: ColumnDescriptor) -> str:
    """Type name the live column must report."""
    return column.sql_type.value


def expected_shape(column: ColumnDescriptor) -> str:
    size = "max" if column.size is None else str(column.size)
    return f"{column.name} {expected_type(column)}({size})"


def check_schema(desc: EnumDescriptor, live_columns: list[LiveColumn]) -> SchemaCheckResult:
    """Compare live result-set columns against the descriptor.

    Args:
        desc: The enum's descriptor.
        live_columns: Physical columns in table order, as reported by the
            database client.

    Returns:
        ``SchemaCheckResult`` whose ``mapping`` holds the role -> ordinal
        mapping when ``valid`` is ``True`` and is empty otherwise.

    Example:
        >>> result = check_schema(descriptor, [])
        >>> result.valid
        False
    """
    problems: list[str] = []
    mapping: ColumnMapping = {}
    by_name = {col.name: col for col in desc.columns}

    if len(live_columns) != len(desc.columns):
        problems.append(
            f"Expected {len(desc.columns)} columns, found {len(live_columns)}"
        )

    for ordinal, live in enumerate(live_columns):
        if live.allows_null:
            problems.append(f"Column {live.name} allows null")
        if live.is_identity:
            problems.append(f"Column {live.name} is an identity column")

        expected = by_name.get(live.name)
        if expected is None:
            problems.append(f"Column {live.name} is not an enabled column")
            continue
        if expected.role in mapping:
            problems.append(f"Column {live.name} appears more than once")
            continue
        if live.type_name.lower() != expected_type(expected):
            problems.append(
                f"Column {live.name} has type {live.type_name}, expected {expected_type(expected)}"
            )
        if live.size != expected.size:
            problems.append(
                f"Column {live.name} has size {_size(live.size)}, expected {_size(expected.size)}"
            )
        mapping[expected.role] = ordinal

    for col in desc.columns:
        if col.role not in mapping:
            problems.append(f"Column {col.name} ({col.role.value}) is missing")

    valid = not problems
    return SchemaCheckResult(
        valid=valid,
        table=desc.qualified_name,
        expected=[expected_shape(col) for col in desc.columns],
        observed=[live.shape for live in live_columns],
        problems=problems,
        mapping=mapping if valid else {},
    )


def reconcile_schema(desc: EnumDescriptor, live_columns: list[LiveColumn]) -> ColumnMapping:
    """Return the verified role -> ordinal mapping.

    Raises:
        SchemaMismatchError: If the live table does not match the descriptor.
    """
    result = check_schema(desc, live_columns)
    if not result.valid:
        raise SchemaMismatchError(desc.qualified_name, result)
    return result.mapping


def _size(size: int | None) -> str:
    return "max" if size is None else str(size)
