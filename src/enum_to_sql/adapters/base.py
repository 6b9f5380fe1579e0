"""Database client protocol definition.

Defines the ``DatabaseClient`` Protocol that the replicator talks to.
All methods are ``async def`` -- the library is async-first.

Usage:
    from enum_to_sql.adapters.base import DatabaseClient

    async def do_work(client: DatabaseClient, descriptor) -> None:
        snapshot = await client.read_table(descriptor)
        await client.execute("delete from [dbo].[Status] where [Id] = :Id", {"Id": 3})
        await client.close()
"""

from typing import Any, Protocol

from pydantic import BaseModel, Field

from enum_to_sql.schema.models import EnumDescriptor, LiveColumn


class TableSnapshot(BaseModel):
    """Live shape and contents of one enum table.

    Attributes:
        columns: Physical columns in table order.
        rows: Raw rows in physical column order, sorted by Id ascending.
    """

    columns: list[LiveColumn] = Field(default_factory=list)
    rows: list[tuple[Any, ...]] = Field(default_factory=list)


class DatabaseClient(Protocol):
    """Database client interface that adapters must implement.

    A client is used by one table pass at a time; the replicator never
    issues statements concurrently on the same client.
    """

    description: str
    """Human-readable identity of the database, e.g. ``app on localhost``."""

    async def read_table(self, desc: EnumDescriptor) -> TableSnapshot:
        """Create the table if missing, then describe and read it.

        Runs ``create_table_and_select()`` and ``column_metadata_query()``
        on one connection so a first run and a steady-state run look the
        same to the caller.

        Args:
            desc: The enum's descriptor.

        Returns:
            ``TableSnapshot`` with the live columns and rows.
        """
        ...

    async def execute(self, sql: str, params: dict[str, Any] | None = None) -> None:
        """Execute one parameterized statement and commit it.

        Raises:
            ForeignKeyViolationError: If the statement conflicts with a
                reference constraint.
        """
        ...

    async def close(self) -> None:
        """Close the connection pool and clean up resources."""
        ...
