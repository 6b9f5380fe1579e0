"""Tests for the SQL Server adapter.

The SQLAlchemy engine is replaced with mocks; no database is contacted.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import IntegrityError

from enum_to_sql.adapters.mssql import (
    AsyncSqlServerAdapter,
    create_async_engine_pooled,
    describe_url,
    is_reference_violation,
    normalize_url,
    safe_describe_url,
)
from enum_to_sql.exceptions import ForeignKeyViolationError
from enum_to_sql.schema.models import ColumnDescriptor, ColumnRole, EnumDescriptor, ValueRecord

URL = "mssql://sa:pw@db.example.com:1433/app?driver=ODBC+Driver+18+for+SQL+Server"


def _descriptor() -> EnumDescriptor:
    return EnumDescriptor(
        full_name="tests.Status",
        table_name="Status",
        columns=(ColumnDescriptor.id(), ColumnDescriptor.text(ColumnRole.NAME), ColumnDescriptor.is_active()),
        values=(ValueRecord(identity=1, name="Open"),),
    )


def _make_adapter(conn: AsyncMock) -> tuple[AsyncSqlServerAdapter, MagicMock]:
    """Create an adapter whose engine.begin() yields ``conn``."""
    engine = MagicMock()
    engine.dispose = AsyncMock()
    begin = MagicMock()
    begin.__aenter__ = AsyncMock(return_value=conn)
    begin.__aexit__ = AsyncMock(return_value=False)
    engine.begin.return_value = begin

    with patch("enum_to_sql.adapters.mssql.create_async_engine_pooled", return_value=engine):
        adapter = AsyncSqlServerAdapter(URL)
    return adapter, engine


def _integrity_error(message: str) -> IntegrityError:
    return IntegrityError("delete from [dbo].[Status] where [Id] = ?", (3,), Exception(message))


# ============================================================================
# Test: URL handling
# ============================================================================


class TestUrls:
    """Verify URL normalization and description."""

    @pytest.mark.parametrize(
        "url",
        [
            "mssql://sa:pw@host/app",
            "sqlserver://sa:pw@host/app",
            "mssql+pyodbc://sa:pw@host/app",
            "mssql+aioodbc://sa:pw@host/app",
        ],
    )
    def test_normalize(self, url: str) -> None:
        """Accepted schemes become mssql+aioodbc:// exactly once."""
        assert normalize_url(url) == "mssql+aioodbc://sa:pw@host/app"

    def test_describe_hides_credentials(self) -> None:
        """Descriptions are database and host only."""
        assert describe_url(URL) == "app on db.example.com"

    def test_describe_defaults(self) -> None:
        """Missing database and host get placeholders."""
        assert describe_url("mssql://") == "(default) on localhost"

    def test_safe_describe_invalid(self) -> None:
        """Unparseable URLs get a placeholder instead of raising."""
        assert safe_describe_url("not a url") == "(invalid url)"
        assert safe_describe_url(URL) == "app on db.example.com"

    def test_adapter_passes_normalized_url(self) -> None:
        """The engine is created with the aioodbc URL."""
        with patch("enum_to_sql.adapters.mssql.create_async_engine_pooled") as mock_create:
            mock_create.return_value = MagicMock()
            adapter = AsyncSqlServerAdapter(URL, pool_size=2)

        call_url = mock_create.call_args[0][0]
        assert call_url.startswith("mssql+aioodbc://")
        assert mock_create.call_args[1] == {"pool_size": 2}
        assert adapter.description == "app on db.example.com"

    def test_pool_defaults_overridable(self) -> None:
        """Caller kwargs override the pool defaults."""
        with patch("enum_to_sql.adapters.mssql.create_async_engine") as mock_engine:
            create_async_engine_pooled("mssql+aioodbc://host/app", pool_size=1)

        kwargs = mock_engine.call_args[1]
        assert kwargs["pool_size"] == 1
        assert kwargs["pool_pre_ping"] is True
        assert kwargs["max_overflow"] == 10


# ============================================================================
# Test: Constraint detection
# ============================================================================


class TestReferenceViolation:
    """Verify error 547 detection."""

    def test_reference_conflict(self) -> None:
        """The REFERENCE constraint conflict message is recognized."""
        error = _integrity_error(
            "[23000] [Microsoft][ODBC Driver 18 for SQL Server][SQL Server]The DELETE statement "
            'conflicted with the REFERENCE constraint "FK_Order_Status". (547) (SQLExecDirectW)'
        )
        assert is_reference_violation(error)

    def test_other_integrity_error(self) -> None:
        """Primary key violations are not reference conflicts."""
        error = _integrity_error("Violation of PRIMARY KEY constraint 'PK_Status'. (2627)")
        assert not is_reference_violation(error)

    def test_check_constraint_not_matched(self) -> None:
        """CHECK conflicts share error 547 but are not reference conflicts."""
        error = _integrity_error(
            "[23000] [Microsoft][ODBC Driver 18 for SQL Server][SQL Server]The DELETE statement "
            'conflicted with the CHECK constraint "CK_Status_Id". (547) (SQLExecDirectW)'
        )
        assert not is_reference_violation(error)


# ============================================================================
# Test: AsyncSqlServerAdapter
# ============================================================================


class TestAsyncSqlServerAdapter:
    """Verify statements go through engine.begin() and errors are translated."""

    @pytest.mark.asyncio
    async def test_execute_binds_params(self) -> None:
        """execute() runs the statement with its parameters."""
        conn = AsyncMock()
        adapter, engine = _make_adapter(conn)

        await adapter.execute("update [dbo].[Status] set [IsActive] = 0 where [Id] = :Id;", {"Id": 3})

        engine.begin.assert_called_once()
        statement, params = conn.execute.await_args.args
        assert str(statement) == "update [dbo].[Status] set [IsActive] = 0 where [Id] = :Id;"
        assert params == {"Id": 3}

    @pytest.mark.asyncio
    async def test_execute_translates_reference_violation(self) -> None:
        """A 547 integrity error becomes ForeignKeyViolationError."""
        conn = AsyncMock()
        conn.execute.side_effect = _integrity_error("conflicted with the REFERENCE constraint (547)")
        adapter, _ = _make_adapter(conn)

        with pytest.raises(ForeignKeyViolationError, match="REFERENCE constraint"):
            await adapter.execute("delete from [dbo].[Status] where [Id] = :Id;", {"Id": 3})

    @pytest.mark.asyncio
    async def test_execute_reraises_other_integrity_errors(self) -> None:
        """Other integrity errors propagate unchanged."""
        conn = AsyncMock()
        conn.execute.side_effect = _integrity_error("Violation of PRIMARY KEY constraint (2627)")
        adapter, _ = _make_adapter(conn)

        with pytest.raises(IntegrityError):
            await adapter.execute("insert into [dbo].[Status] ([Id]) values (:Id);", {"Id": 1})

    @pytest.mark.asyncio
    async def test_read_table(self) -> None:
        """read_table() runs the create script, then the column metadata query."""
        conn = AsyncMock()
        conn.exec_driver_sql.return_value = MagicMock(
            fetchall=MagicMock(return_value=[(1, "Open", True), (2, "Closed", False)])
        )
        conn.execute.return_value = MagicMock(
            fetchall=MagicMock(
                return_value=[
                    ("Id", "int", 4, 0, 0),
                    ("Name", "nvarchar", 250, 0, 0),
                    ("IsActive", "bit", 1, 0, 0),
                ]
            )
        )
        adapter, _ = _make_adapter(conn)

        snapshot = await adapter.read_table(_descriptor())

        script = conn.exec_driver_sql.await_args.args[0]
        assert "create table [dbo].[Status]" in script
        assert conn.execute.await_args.args[1] == {"object_name": "[dbo].[Status]"}
        assert snapshot.rows == [(1, "Open", True), (2, "Closed", False)]
        assert [c.name for c in snapshot.columns] == ["Id", "Name", "IsActive"]
        assert snapshot.columns[1].size == 250
        assert not snapshot.columns[0].allows_null

    @pytest.mark.asyncio
    async def test_close_disposes_engine(self) -> None:
        """close() disposes the connection pool."""
        adapter, engine = _make_adapter(AsyncMock())
        await adapter.close()
        engine.dispose.assert_awaited_once()
