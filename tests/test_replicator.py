"""Tests for the replicator: table passes, database passes, fan-out.

Database clients are ``AsyncMock`` fakes that hold an in-memory table per
descriptor and apply the statements they receive.
"""

import io
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from rich.console import Console

from enum_to_sql.adapters.base import TableSnapshot
from enum_to_sql.exceptions import ConfigurationError, DatabaseUpdateError, SchemaMismatchError
from enum_to_sql.replicator import EnumToSqlReplicator
from enum_to_sql.reporting import ConsoleReporter
from enum_to_sql.schema.executor import RowAction
from enum_to_sql.schema.models import (
    ColumnDescriptor,
    ColumnRole,
    EnumDescriptor,
    LiveColumn,
    ValueRecord,
)


def _descriptor(table: str = "Status", policy: str = "MarkInactive") -> EnumDescriptor:
    return EnumDescriptor(
        full_name=f"tests.{table}",
        table_name=table,
        deletion_policy=policy,
        columns=(
            ColumnDescriptor.id(),
            ColumnDescriptor.text(ColumnRole.NAME),
            ColumnDescriptor.is_active(),
        ),
        values=(
            ValueRecord(identity=1, name="Open"),
            ValueRecord(identity=2, name="Closed"),
        ),
    )


LIVE_COLUMNS = [
    LiveColumn(name="Id", type_name="int", size=4),
    LiveColumn(name="Name", type_name="nvarchar", size=250),
    LiveColumn(name="IsActive", type_name="bit", size=1),
]


def _reporter() -> tuple[ConsoleReporter, io.StringIO]:
    buffer = io.StringIO()
    return ConsoleReporter(Console(file=buffer, width=200, soft_wrap=True)), buffer


def _make_mock_client(
    description: str = "app on localhost",
    tables: dict[str, list[tuple[Any, ...]]] | None = None,
    columns: list[LiveColumn] | None = None,
) -> AsyncMock:
    """Create a mock client backed by in-memory rows per qualified table."""
    tables = tables if tables is not None else {}
    client = AsyncMock()
    client.description = description
    client.tables = tables

    async def _read_table(desc: EnumDescriptor) -> TableSnapshot:
        rows = tables.setdefault(desc.qualified_name, [])
        return TableSnapshot(columns=columns or LIVE_COLUMNS, rows=sorted(rows))

    async def _execute(sql: str, params: dict | None = None) -> None:
        table = sql.split("[dbo].[")[1].split("]")[0]
        rows = tables.setdefault(f"dbo.{table}", [])
        params = params or {}
        if sql.startswith("insert"):
            rows.append((params["Id"], params["Name"], params["IsActive"]))
        elif sql.startswith("delete"):
            rows[:] = [r for r in rows if r[0] != params["Id"]]
        elif "set [IsActive] = 0" in sql:
            rows[:] = [(r[0], r[1], False) if r[0] == params["Id"] else r for r in rows]
        else:
            rows[:] = [(r[0], params["Name"], params["IsActive"]) if r[0] == params["Id"] else r for r in rows]

    client.read_table = AsyncMock(side_effect=_read_table)
    client.execute = AsyncMock(side_effect=_execute)
    client.close = AsyncMock()
    return client


# ============================================================================
# Test: sync_table
# ============================================================================


class TestSyncTable:
    """Verify a full pass for one table."""

    @pytest.mark.asyncio
    async def test_first_run_inserts(self) -> None:
        """An empty table gets every value."""
        client = _make_mock_client()
        reporter, _ = _reporter()
        replicator = EnumToSqlReplicator([_descriptor()])

        result = await replicator.sync_table(client, _descriptor(), reporter)

        assert result.success
        assert result.inserted == 2
        assert client.tables["dbo.Status"] == [(1, "Open", True), (2, "Closed", True)]

    @pytest.mark.asyncio
    async def test_second_run_is_noop(self) -> None:
        """A second pass issues no statements."""
        client = _make_mock_client()
        reporter, _ = _reporter()
        replicator = EnumToSqlReplicator([_descriptor()])

        await replicator.sync_table(client, _descriptor(), reporter)
        client.execute.reset_mock()
        result = await replicator.sync_table(client, _descriptor(), reporter)

        assert result.outcomes == []
        client.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_schema_mismatch_writes_nothing(self) -> None:
        """A mismatched table raises before any write."""
        client = _make_mock_client(columns=LIVE_COLUMNS[:2])
        reporter, _ = _reporter()
        replicator = EnumToSqlReplicator([_descriptor()])

        with pytest.raises(SchemaMismatchError):
            await replicator.sync_table(client, _descriptor(), reporter)

        client.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_orphan_marked_inactive(self) -> None:
        """A row whose value was removed is marked inactive."""
        client = _make_mock_client(tables={"dbo.Status": [(1, "Open", True), (3, "Old", True)]})
        reporter, buffer = _reporter()
        replicator = EnumToSqlReplicator([_descriptor()])

        result = await replicator.sync_table(client, _descriptor(), reporter)

        assert [o.action for o in result.outcomes] == [RowAction.INSERTED, RowAction.DEACTIVATED]
        assert (3, "Old", False) in client.tables["dbo.Status"]
        assert 'Marked deleted value "Old" as inactive' in buffer.getvalue()


# ============================================================================
# Test: update_database
# ============================================================================


class TestUpdateDatabase:
    """Verify one database pass over several tables."""

    @pytest.mark.asyncio
    async def test_failing_table_does_not_stop_others(self) -> None:
        """A failing table is recorded and later tables still run."""
        client = _make_mock_client()
        original = client.read_table.side_effect

        async def _read_table(desc: EnumDescriptor) -> TableSnapshot:
            if desc.table_name == "Broken":
                raise RuntimeError("permission denied")
            return await original(desc)

        client.read_table.side_effect = _read_table
        reporter, buffer = _reporter()
        replicator = EnumToSqlReplicator([_descriptor("Broken"), _descriptor("Status")])

        result = await replicator.update_database(client, reporter)

        assert not result.success
        assert list(result.failures) == ["dbo.Broken"]
        assert "permission denied" in result.failures["dbo.Broken"]
        assert [t.table for t in result.tables] == ["dbo.Broken", "dbo.Status"]
        assert result.tables[1].inserted == 2

        output = buffer.getvalue()
        assert output.startswith("Updating database app on localhost")
        assert "ERROR: RuntimeError: permission denied" in output

    @pytest.mark.asyncio
    async def test_no_enums_does_nothing(self) -> None:
        """Without enums the client is never used."""
        client = _make_mock_client()
        reporter, buffer = _reporter()

        result = await EnumToSqlReplicator([]).update_database(client, reporter)

        assert result.success
        client.read_table.assert_not_awaited()
        assert buffer.getvalue() == ""


# ============================================================================
# Test: update_databases
# ============================================================================


class TestUpdateDatabases:
    """Verify fan-out over several databases."""

    def _factory(self, clients: dict[str, AsyncMock]) -> MagicMock:
        return MagicMock(side_effect=lambda url: clients[url])

    @pytest.mark.asyncio
    async def test_parallel_success(self) -> None:
        """Every database is updated and every client closed."""
        clients = {
            "mssql://a/one": _make_mock_client("one on a"),
            "mssql://b/two": _make_mock_client("two on b"),
        }
        reporter, buffer = _reporter()
        replicator = EnumToSqlReplicator([_descriptor()])

        results = await replicator.update_databases(
            list(clients), reporter, parallel=True, client_factory=self._factory(clients)
        )

        assert [r.database for r in results] == ["one on a", "two on b"]
        for client in clients.values():
            client.close.assert_awaited_once()
            assert len(client.tables["dbo.Status"]) == 2

        lines = buffer.getvalue().splitlines()
        first = lines.index("Updating database one on a")
        second = lines.index("Updating database two on b")
        # each database prints as one uninterrupted section
        assert lines[first + 1] == "  Updating dbo.Status"
        assert lines[second + 1] == "  Updating dbo.Status"

    @pytest.mark.asyncio
    async def test_parallel_failure_does_not_abort_siblings(self) -> None:
        """A failing database is aggregated; siblings still complete."""
        bad = _make_mock_client("bad on a", columns=LIVE_COLUMNS[:1])
        good = _make_mock_client("good on b")
        clients = {"mssql://a/bad": bad, "mssql://b/good": good}
        reporter, _ = _reporter()
        replicator = EnumToSqlReplicator([_descriptor()])

        with pytest.raises(DatabaseUpdateError) as exc_info:
            await replicator.update_databases(
                list(clients), reporter, parallel=True, client_factory=self._factory(clients)
            )

        assert list(exc_info.value.failures) == ["bad on a"]
        assert exc_info.value.is_reported
        assert len(good.tables["dbo.Status"]) == 2
        bad.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_connection_error_is_collected(self) -> None:
        """Errors creating a client are collected per database, without credentials."""
        good = _make_mock_client("good on b")

        def factory(url: str) -> AsyncMock:
            if url == "mssql://sa:secret@a/down":
                raise OSError("host unreachable")
            return good

        reporter, buffer = _reporter()
        replicator = EnumToSqlReplicator([_descriptor()])

        with pytest.raises(DatabaseUpdateError) as exc_info:
            await replicator.update_databases(
                ["mssql://sa:secret@a/down", "mssql://b/good"], reporter, client_factory=factory
            )

        assert list(exc_info.value.failures) == ["down on a"]
        assert isinstance(exc_info.value.failures["down on a"], OSError)
        assert "ERROR: OSError: host unreachable" in buffer.getvalue()
        good.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_serial_stops_at_first_failure(self) -> None:
        """Serial mode does not start databases after a failure."""
        bad = _make_mock_client("bad on a", columns=LIVE_COLUMNS[:1])
        later = _make_mock_client("later on b")
        clients = {"mssql://a/bad": bad, "mssql://b/later": later}
        reporter, _ = _reporter()
        replicator = EnumToSqlReplicator([_descriptor()])

        with pytest.raises(DatabaseUpdateError):
            await replicator.update_databases(
                list(clients), reporter, parallel=False, client_factory=self._factory(clients)
            )

        later.read_table.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_duplicate_urls_rejected(self) -> None:
        """The same database cannot be listed twice."""
        factory = MagicMock()
        reporter, _ = _reporter()
        replicator = EnumToSqlReplicator([_descriptor()])

        with pytest.raises(ConfigurationError, match="Duplicate connection string"):
            await replicator.update_databases(["mssql://a/x", "mssql://a/x"], reporter, client_factory=factory)

        factory.assert_not_called()


# ============================================================================
# Test: from_modules
# ============================================================================


class TestFromModules:
    """Verify discovery wiring."""

    def test_reports_found_enums(self, tmp_path) -> None:
        """Found enums are listed with their tables."""
        path = tmp_path / "replicated_enums.py"
        path.write_text(
            "from enum import IntEnum\n"
            "from enum_to_sql.discovery import replicate\n"
            "\n"
            "@replicate(table='Color')\n"
            "class Color(IntEnum):\n"
            "    Red = 1\n"
        )
        reporter, buffer = _reporter()

        replicator = EnumToSqlReplicator.from_modules([str(path)], reporter)

        assert [d.table_name for d in replicator.enums] == ["Color"]
        output = buffer.getvalue()
        assert "Found 1 enum(s) to replicate" in output
        assert "Color -> dbo.Color" in output

    def test_warns_when_nothing_found(self, tmp_path) -> None:
        """An empty module produces a warning."""
        path = tmp_path / "empty_enums.py"
        path.write_text("X = 1\n")
        reporter, buffer = _reporter()

        replicator = EnumToSqlReplicator.from_modules([str(path)], reporter)

        assert replicator.enums == []
        assert "WARNING: No enums marked for replication were found" in buffer.getvalue()
