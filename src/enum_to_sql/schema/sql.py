"""T-SQL text generation for enum tables.

Every statement is produced deterministically from an ``EnumDescriptor``.
Identifiers are bracket-delimited with embedded ``]`` doubled, string
literals are quote-escaped by doubling ``'``.  Bind markers use SQLAlchemy's
named style, the parameter name being the column's canonical role (``:Id``,
``:Name``, ...), so one row's parameter dict works for every statement.
The row statements are meant for ``sqlalchemy.text()``, so colons inside
their identifiers are escaped as ``\\:``.

Usage:
    from enum_to_sql.schema.sql import create_table_and_select, insert_sql

    script = create_table_and_select(descriptor)
    statement = insert_sql(descriptor)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from enum_to_sql.schema.models import EnumDescriptor

_INDENT = "    "


# ------------------------------------------------------------------
# Quoting
# ------------------------------------------------------------------


def bracket_name(name: str) -> str:
    """Bracket-delimit an identifier, doubling embedded ``]``.

    Example:
        >>> bracket_name("Order]Status")
        '[Order]]Status]'
    """
    return "[" + name.replace("]", "]]") + "]"


def text_identifier(sql_name: str) -> str:
    """Escape colons in a bracketed identifier for use inside ``text()``.

    Example:
        >>> text_identifier("[:Codes]")
        '[\\\\:Codes]'
    """
    return sql_name.replace(":", "\\:")


def escape_string(value: str) -> str:
    """Escape a value for use inside a single-quoted literal."""
    return value.replace("'", "''")


def trim_sql_name(name: str) -> str:
    """Trim whitespace and one pair of surrounding brackets.

    Example:
        >>> trim_sql_name("  [dbo] ")
        'dbo'
    """
    name = name.strip()
    if name.startswith("[") and name.endswith("]") and len(name) > 2:
        name = name[1:-1]
    return name


# ------------------------------------------------------------------
# Statements
# ------------------------------------------------------------------


def create_table_and_select(desc: EnumDescriptor) -> str:
    """Build the existence-guarded create followed by the ordered select.

    The table is created only when ``INFORMATION_SCHEMA.TABLES`` has no row
    for it, so the script is safe to run on every pass.  The trailing
    select returns the whole table ordered by Id ascending.
    """
    lines = [
        "set nocount on;",
        "",
        "if not exists (select * from INFORMATION_SCHEMA.TABLES "
        f"where TABLE_SCHEMA = '{escape_string(desc.schema_name)}' "
        f"and TABLE_NAME = '{escape_string(desc.table_name)}')",
        "begin",
        f"{_INDENT}create table {desc.qualified_sql_name}",
        f"{_INDENT}(",
    ]
    for col in desc.columns:
        lines.append(f"{_INDENT * 2}{col.sql_name} {col.sized_sql_type} not null,")
    lines.append("")
    lines.append(
        f"{_INDENT * 2}constraint {bracket_name('PK_' + desc.table_name)} "
        f"primary key clustered ({desc.id_column.sql_name})"
    )
    lines.append(f"{_INDENT});")
    lines.append("end")
    lines.append("")
    lines.append(
        f"select * from {desc.qualified_sql_name} "
        f"order by {desc.id_column.sql_name} asc;"
    )
    return "\n".join(lines) + "\n"


def column_metadata_query() -> str:
    """Query describing a table's columns in physical order.

    Bound by ``:object_name`` (a bracketed ``schema.table`` name).  Returns
    name, type name, size, nullability and identity flag per column.  Sizes
    are bytes for fixed-width types and characters for ``nvarchar``; the
    unbounded ``nvarchar(max)`` reports ``NULL``.
    """
    return (
        "select c.name, t.name, "
        "case when t.name in ('nvarchar', 'nchar') "
        "then case when c.max_length = -1 then null else c.max_length / 2 end "
        "else c.max_length end, "
        "c.is_nullable, c.is_identity "
        "from sys.columns c "
        "join sys.types t on t.user_type_id = c.user_type_id "
        "where c.object_id = object_id(:object_name) "
        "order by c.column_id;"
    )


def _table(desc: EnumDescriptor) -> str:
    return text_identifier(desc.qualified_sql_name)


def insert_sql(desc: EnumDescriptor) -> str:
    """Insert binding every enabled column."""
    names = ", ".join(text_identifier(col.sql_name) for col in desc.columns)
    params = ", ".join(f":{col.role.value}" for col in desc.columns)
    return f"insert into {_table(desc)} ({names}) values ({params});"


def update_sql(desc: EnumDescriptor) -> str:
    """Update setting every enabled non-Id column, keyed by Id.

    Raises:
        ValueError: If the descriptor has only the Id column (nothing can
            differ between a value and its row, so no update is ever planned).
    """
    id_col = desc.id_column
    others = [col for col in desc.columns if col is not id_col]
    if not others:
        raise ValueError(f"update_sql called for {desc.qualified_name}, which has only the Id column")

    assignments = ", ".join(f"{text_identifier(col.sql_name)} = :{col.role.value}" for col in others)
    return (
        f"update {_table(desc)} set {assignments} "
        f"where {text_identifier(id_col.sql_name)} = :{id_col.role.value};"
    )


def delete_sql(desc: EnumDescriptor) -> str:
    """Delete one row keyed by Id."""
    id_col = desc.id_column
    return (
        f"delete from {_table(desc)} "
        f"where {text_identifier(id_col.sql_name)} = :{id_col.role.value};"
    )


def deactivate_sql(desc: EnumDescriptor) -> str:
    """Mark one row inactive, keyed by Id.

    Raises:
        ValueError: If the descriptor has no IsActive column.
    """
    active_col = desc.is_active_column
    if active_col is None:
        raise ValueError(f"deactivate_sql called for {desc.qualified_name}, which has no IsActive column")

    id_col = desc.id_column
    return (
        f"update {_table(desc)} set {text_identifier(active_col.sql_name)} = 0 "
        f"where {text_identifier(id_col.sql_name)} = :{id_col.role.value};"
    )
