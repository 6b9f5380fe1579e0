"""Replicate enum descriptors into one or more SQL Server databases (async).

A table pass reads the live table (creating it if missing), checks its
shape, plans the row changes and applies them.  Passes for the tables of
one database run one after another on that database's client; databases
are updated concurrently when ``parallel=True``.

Failure handling:
- A failing table is reported and recorded in ``DatabaseResult.failures``;
  the remaining tables of that database are still updated.
- In parallel mode every database runs to completion and the failures are
  raised together as ``DatabaseUpdateError``.  In serial mode the first
  database with a failure stops the run.

Usage:
    from enum_to_sql.replicator import EnumToSqlReplicator
    from enum_to_sql.reporting import make_reporter

    reporter = make_reporter("colors")
    replicator = EnumToSqlReplicator.from_modules(["myapp.enums"], reporter)
    results = await replicator.update_databases(
        ["mssql://sa:pw@localhost/app?driver=ODBC+Driver+18+for+SQL+Server"],
        reporter,
    )
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Callable, Iterable, Sequence

from pydantic import BaseModel, Field

from enum_to_sql.adapters.base import DatabaseClient
from enum_to_sql.adapters.mssql import AsyncSqlServerAdapter, safe_describe_url
from enum_to_sql.discovery import find_enums
from enum_to_sql.exceptions import ConfigurationError, DatabaseUpdateError, EnumToSqlError, TableSyncError
from enum_to_sql.reporting import Reporter
from enum_to_sql.schema.executor import TableSyncResult, apply_plan
from enum_to_sql.schema.models import EnumDescriptor
from enum_to_sql.schema.planner import create_plan
from enum_to_sql.schema.reconciler import reconcile_schema
from enum_to_sql.schema.snapshot import read_rows

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], DatabaseClient]


class DatabaseResult(BaseModel):
    """Result of updating every enum table in one database.

    Attributes:
        database: Description of the database (``db on host``).
        tables: One result per table, in replication order.
        failures: Mapping of qualified table name to error message.
    """

    database: str
    tables: list[TableSyncResult] = Field(default_factory=list)
    failures: dict[str, str] = Field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.failures


class EnumToSqlReplicator:
    """Replicates a fixed set of enum descriptors.

    Args:
        enums: Descriptors to replicate, in the order tables are updated.
    """

    def __init__(self, enums: Iterable[EnumDescriptor]) -> None:
        self.enums: list[EnumDescriptor] = list(enums)

    @classmethod
    def from_modules(cls, modules: Iterable[str], reporter: Reporter | None = None) -> EnumToSqlReplicator:
        """Discover decorated enums in ``modules``.

        Raises:
            ConfigurationError: If a module fails to import or an enum is
                misconfigured.
        """
        enums = find_enums(modules)
        if reporter is not None:
            if enums:
                with reporter.block(f"Found {len(enums)} enum(s) to replicate"):
                    for desc in enums:
                        reporter.info(f"{desc.full_name} -> {desc.qualified_name}")
            else:
                reporter.warning("No enums marked for replication were found")
        return cls(enums)

    # ------------------------------------------------------------------
    # Single table
    # ------------------------------------------------------------------

    async def sync_table(
        self,
        client: DatabaseClient,
        desc: EnumDescriptor,
        reporter: Reporter,
    ) -> TableSyncResult:
        """Run one full pass for ``desc`` on ``client``.

        Raises:
            SchemaMismatchError: If the live table has the wrong shape.
                Nothing is written in that case.
            TableSyncError: If a row statement fails.
        """
        snapshot = await client.read_table(desc)
        mapping = reconcile_schema(desc, snapshot.columns)
        rows = read_rows(desc, mapping, snapshot.rows)
        plan = create_plan(desc, rows)
        logger.debug(
            "%s: %s has %d row(s), %d change(s) planned",
            client.description, desc.qualified_name, len(rows), plan.change_count,
        )
        return await apply_plan(client, desc, plan, reporter)

    # ------------------------------------------------------------------
    # Single database
    # ------------------------------------------------------------------

    async def update_database(self, client: DatabaseClient, reporter: Reporter) -> DatabaseResult:
        """Update every enum table on ``client``.

        Table failures are reported and recorded, never raised.
        """
        result = DatabaseResult(database=client.description)
        if not self.enums:
            return result

        with reporter.block(f"Updating database {client.description}"):
            for desc in self.enums:
                try:
                    table_result = await self.sync_table(client, desc, reporter)
                except Exception as e:
                    reporter.exception(e)
                    logger.debug("%s: %s failed", client.description, desc.qualified_name, exc_info=True)
                    result.failures[desc.qualified_name] = str(e)
                    table_result = TableSyncResult(
                        table=desc.qualified_name,
                        success=False,
                        outcomes=e.outcomes if isinstance(e, TableSyncError) else [],
                        error=str(e),
                    )
                result.tables.append(table_result)

        return result

    # ------------------------------------------------------------------
    # Many databases
    # ------------------------------------------------------------------

    async def update_databases(
        self,
        urls: Sequence[str],
        reporter: Reporter,
        parallel: bool = True,
        client_factory: ClientFactory = AsyncSqlServerAdapter,
    ) -> list[DatabaseResult]:
        """Update every database in ``urls``.

        Args:
            urls: Connection URLs, each naming a database.
            reporter: Receives progress.  In parallel mode each database
                writes to a buffered child flushed as one section.
            parallel: Update databases concurrently, up to the CPU count.
            client_factory: Creates a client for a URL.

        Returns:
            One ``DatabaseResult`` per database that was attempted.

        Raises:
            ConfigurationError: If the same URL is listed twice.
            DatabaseUpdateError: If any database failed.
        """
        seen: set[str] = set()
        for url in urls:
            if url in seen:
                raise ConfigurationError("Duplicate connection string. Each database may only be listed once.")
            seen.add(url)

        failures: dict[str, BaseException] = {}
        results: list[DatabaseResult] = []

        if parallel:
            semaphore = asyncio.Semaphore(max(1, os.cpu_count() or 1))

            async def run(url: str) -> DatabaseResult | BaseException:
                async with semaphore:
                    child = reporter.child()
                    try:
                        return await self._update_url(url, child, client_factory)
                    except Exception as e:
                        child.exception(e)
                        return e
                    finally:
                        child.flush()

            outcomes = await asyncio.gather(*(run(url) for url in urls))
            for url, outcome in zip(urls, outcomes):
                self._collect(url, outcome, results, failures)
        else:
            for url in urls:
                try:
                    outcome = await self._update_url(url, reporter, client_factory)
                except Exception as e:
                    reporter.exception(e)
                    outcome = e
                self._collect(url, outcome, results, failures)
                if failures:
                    break

        if failures:
            raise DatabaseUpdateError(
                "One or more databases failed to update (see log)", failures, is_reported=True
            )
        return results

    async def _update_url(self, url: str, reporter: Reporter, client_factory: ClientFactory) -> DatabaseResult:
        client = client_factory(url)
        try:
            return await self.update_database(client, reporter)
        finally:
            await client.close()

    @staticmethod
    def _collect(
        url: str,
        outcome: DatabaseResult | BaseException,
        results: list[DatabaseResult],
        failures: dict[str, BaseException],
    ) -> None:
        # keyed by description; the URL may carry a password
        if isinstance(outcome, BaseException):
            failures[safe_describe_url(url)] = outcome
            return
        results.append(outcome)
        if not outcome.success:
            failures[outcome.database] = EnumToSqlError(
                f"Failed to update table(s): {', '.join(outcome.failures)}", is_reported=True
            )
