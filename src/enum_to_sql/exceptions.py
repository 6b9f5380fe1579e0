"""Exception hierarchy for enum-to-sql.

Every error raised on purpose by the library derives from ``EnumToSqlError``.
The ``is_reported`` flag records whether the error has already been written
to a reporter, so outer layers never report the same failure twice.

Taxonomy:
- ``ConfigurationError``: malformed enum configuration, raised before any
  database contact.
- ``SchemaMismatchError``: the live table does not have the expected shape.
- ``ForeignKeyViolationError``: a delete conflicted with a reference
  constraint.
- ``TableSyncError``: a table pass aborted part way through.
- ``DatabaseUpdateError``: one or more databases failed to update.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from enum_to_sql.schema.executor import RowOutcome
    from enum_to_sql.schema.reconciler import SchemaCheckResult


class EnumToSqlError(Exception):
    """Base class for enum-to-sql errors."""

    def __init__(self, message: str, *, is_reported: bool = False) -> None:
        super().__init__(message)
        self.is_reported = is_reported


class ConfigurationError(EnumToSqlError):
    """Raised when an enum's replication configuration is invalid."""

    pass


class TargetNotFoundError(EnumToSqlError):
    """Raised when a named target database is not present in the config file."""

    pass


class PlanInvariantError(EnumToSqlError):
    """Raised when planner inputs are not strictly ascending by identity."""

    pass


class SchemaMismatchError(EnumToSqlError):
    """Raised when a live table does not match the expected column layout.

    Attributes:
        table: Qualified ``schema.table`` name.
        report: The ``SchemaCheckResult`` with expected and observed shapes.
    """

    def __init__(self, table: str, report: SchemaCheckResult) -> None:
        super().__init__(
            f"Table {table} does not match the expected schema.\n"
            f"{report.format_report()}"
        )
        self.table = table
        self.report = report


class ForeignKeyViolationError(EnumToSqlError):
    """Raised by a client when a statement conflicts with a reference constraint."""

    pass


class TableSyncError(EnumToSqlError):
    """Raised when a table pass aborts.

    Attributes:
        table: Qualified ``schema.table`` name.
        outcomes: Row outcomes applied before the failure.
    """

    def __init__(
        self,
        table: str,
        message: str,
        outcomes: list[RowOutcome] | None = None,
        *,
        is_reported: bool = False,
    ) -> None:
        super().__init__(f"Failed to update table {table}: {message}", is_reported=is_reported)
        self.table = table
        self.outcomes = outcomes or []


class DatabaseUpdateError(EnumToSqlError):
    """Raised when one or more databases failed to update.

    Attributes:
        failures: Mapping of database description to the error that stopped it.
    """

    def __init__(
        self,
        message: str,
        failures: dict[str, BaseException],
        *,
        is_reported: bool = False,
    ) -> None:
        super().__init__(message, is_reported=is_reported)
        self.failures = failures
