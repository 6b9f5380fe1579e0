"""Pydantic models for enum replication.

This module contains the replication-domain models:
- Column and enum descriptors: ColumnRole, SqlType, DeletionPolicy,
  ColumnDescriptor, EnumDescriptor
- Value and row records: ValueRecord, Row
- Live schema description: LiveColumn

Descriptors are frozen and validate their invariants at construction, so a
malformed configuration fails with ``ConfigurationError`` before any
database contact.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from enum_to_sql.exceptions import ConfigurationError
from enum_to_sql.schema.sql import bracket_name, trim_sql_name

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1
UINT64_MAX = 2**64 - 1

# SQL Server's sysname limit
MAX_IDENTIFIER_LENGTH = 128

DEFAULT_NAME_SIZE = 250


# ============================================================================
# Enumerations
# ============================================================================


class ColumnRole(str, Enum):
    """Canonical role of a column.  The value doubles as its bind parameter name."""

    ID = "Id"
    NAME = "Name"
    DISPLAY_NAME = "DisplayName"
    DESCRIPTION = "Description"
    IS_ACTIVE = "IsActive"


# Fixed physical order of enabled columns
COLUMN_ORDER: tuple[ColumnRole, ...] = (
    ColumnRole.ID,
    ColumnRole.NAME,
    ColumnRole.DISPLAY_NAME,
    ColumnRole.DESCRIPTION,
    ColumnRole.IS_ACTIVE,
)

TEXT_ROLES = frozenset({ColumnRole.NAME, ColumnRole.DISPLAY_NAME, ColumnRole.DESCRIPTION})


class SqlType(str, Enum):
    """SQL Server column types used by enum tables."""

    TINYINT = "tinyint"
    SMALLINT = "smallint"
    INT = "int"
    BIGINT = "bigint"
    NVARCHAR = "nvarchar"
    BIT = "bit"


_INTEGER_TYPES: dict[int, SqlType] = {
    1: SqlType.TINYINT,
    2: SqlType.SMALLINT,
    4: SqlType.INT,
    8: SqlType.BIGINT,
}

# Inclusive value ranges; tinyint is unsigned in SQL Server
INTEGER_RANGES: dict[int, tuple[int, int]] = {
    1: (0, 255),
    2: (-(2**15), 2**15 - 1),
    4: (-(2**31), 2**31 - 1),
    8: (INT64_MIN, INT64_MAX),
}


def integer_type_for_size(size: int) -> SqlType:
    """Map an Id column byte size to its integer type.

    Raises:
        ConfigurationError: If ``size`` is not 1, 2, 4 or 8.
    """
    try:
        return _INTEGER_TYPES[size]
    except KeyError:
        raise ConfigurationError(
            f"{size} is not a valid Id column size. Must be 1, 2, 4, or 8."
        ) from None


def minimal_integer_size(identities: Iterable[int]) -> int:
    """Smallest integer column width whose range holds every identity."""
    identities = list(identities)
    for size in (1, 2, 4, 8):
        low, high = INTEGER_RANGES[size]
        if all(low <= i <= high for i in identities):
            return size
    raise ConfigurationError("Enum values do not fit in a 64-bit integer")


def widen_identity(value: int) -> int:
    """Convert an integer enum value into its signed 64-bit form.

    Unsigned 64-bit values above ``INT64_MAX`` wrap to negative numbers, the
    same bit pattern a ``bigint`` column stores for them.

    Raises:
        ConfigurationError: If ``value`` is not an integer or is outside both
            the signed and unsigned 64-bit ranges.

    Example:
        >>> widen_identity(2**64 - 1)
        -1
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"Enum value {value!r} is not an integer")
    if INT64_MIN <= value <= INT64_MAX:
        return value
    if INT64_MAX < value <= UINT64_MAX:
        return value - 2**64
    raise ConfigurationError(f"Enum value {value} does not fit in 64 bits")


class DeletionPolicy(str, Enum):
    """What to do with a table row whose value no longer exists in code."""

    MARK_INACTIVE = "MarkInactive"
    TRY_DELETE = "TryDelete"
    DELETE = "Delete"
    IGNORE = "Ignore"

    @classmethod
    def parse(cls, value: "str | DeletionPolicy") -> "DeletionPolicy":
        """Parse a policy name case-insensitively.

        Accepts ``MarkAsInactive`` and ``DoNothing`` as aliases.

        Raises:
            ConfigurationError: If the name is not a known policy.
        """
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace("_", "").replace("-", "")
        for policy in cls:
            if policy.value.lower() == key:
                return policy
        aliases = {"markasinactive": cls.MARK_INACTIVE, "donothing": cls.IGNORE}
        if key in aliases:
            return aliases[key]
        raise ConfigurationError(f'DeletionMode "{value}" is not valid.')


# ============================================================================
# Records
# ============================================================================


class Row(BaseModel):
    """One physical table record.

    Fields belonging to disabled columns hold neutral values and are never
    compared by the planner.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    name: str = ""
    display_name: str = ""
    description: str = ""
    is_active: bool = True


class ValueRecord(BaseModel):
    """One enum member's replication payload.

    Example:
        >>> value = ValueRecord(identity=3, name="Closed")
        >>> value.display_name
        'Closed'
    """

    model_config = ConfigDict(frozen=True)

    identity: int
    name: str
    display_name: str = ""
    description: str = ""
    is_active: bool = True

    @model_validator(mode="before")
    @classmethod
    def _default_display_name(cls, data: object) -> object:
        if isinstance(data, dict) and not data.get("display_name"):
            data = {**data, "display_name": data.get("name", "")}
        return data

    @field_validator("identity", mode="before")
    @classmethod
    def _widen(cls, value: int) -> int:
        return widen_identity(value)

    def to_row(self) -> Row:
        """The row this value should be persisted as."""
        return Row(
            id=self.identity,
            name=self.name,
            display_name=self.display_name,
            description=self.description,
            is_active=self.is_active,
        )


class LiveColumn(BaseModel):
    """Description of one physical column of a live result set."""

    model_config = ConfigDict(frozen=True)

    name: str
    size: int | None
    type_name: str
    allows_null: bool = False
    is_identity: bool = False

    @property
    def shape(self) -> str:
        """Human-readable ``name type(size)`` used in mismatch reports."""
        size = "max" if self.size is None else str(self.size)
        flags = []
        if self.allows_null:
            flags.append("null")
        if self.is_identity:
            flags.append("identity")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        return f"{self.name} {self.type_name}({size}){suffix}"


# ============================================================================
# Descriptors
# ============================================================================


class ColumnDescriptor(BaseModel):
    """Description of one column of an enum table.

    ``size`` is bytes for integer columns, characters for ``nvarchar``
    (``None`` meaning ``max``) and ``1`` for ``bit``.

    Example:
        >>> col = ColumnDescriptor(role=ColumnRole.NAME, name="Name", size=250,
        ...                        sql_type=SqlType.NVARCHAR)
        >>> col.sized_sql_type
        'nvarchar(250)'
    """

    model_config = ConfigDict(frozen=True)

    role: ColumnRole
    name: str
    size: int | None
    sql_type: SqlType

    @field_validator("name", mode="before")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        name = trim_sql_name(value or "")
        if not name:
            raise ConfigurationError("Column name cannot be null or empty.")
        if len(name) > MAX_IDENTIFIER_LENGTH:
            raise ConfigurationError(
                f'Column name "{name}" exceeds {MAX_IDENTIFIER_LENGTH} characters.'
            )
        if any(ord(ch) < 32 for ch in name):
            raise ConfigurationError(f"Column name {name!r} contains control characters.")
        return name

    @model_validator(mode="after")
    def _validate_shape(self) -> "ColumnDescriptor":
        if self.role == ColumnRole.ID:
            allowed = set(_INTEGER_TYPES.values())
        elif self.role == ColumnRole.IS_ACTIVE:
            allowed = {SqlType.BIT}
        else:
            allowed = {SqlType.NVARCHAR}
        if self.sql_type not in allowed:
            raise ConfigurationError(
                f"{self.role.value} column cannot be of type {self.sql_type.value}."
            )

        if self.sql_type == SqlType.NVARCHAR:
            if self.size is not None and self.size < 1:
                raise ConfigurationError(f"{self.role.value}ColumnSize cannot be less than 1.")
        elif self.sql_type == SqlType.BIT:
            if self.size != 1:
                raise ConfigurationError(f"{self.role.value} column of type bit must have size 1.")
        elif self.size is None or integer_type_for_size(self.size) != self.sql_type:
            raise ConfigurationError(
                f"{self.role.value} column size {self.size} does not match type {self.sql_type.value}."
            )
        return self

    @property
    def sql_name(self) -> str:
        return bracket_name(self.name)

    @property
    def sized_sql_type(self) -> str:
        if self.sql_type == SqlType.NVARCHAR:
            return f"nvarchar({'max' if self.size is None else self.size})"
        return self.sql_type.value

    @classmethod
    def id(cls, name: str = "Id", size: int = 4) -> "ColumnDescriptor":
        return cls(role=ColumnRole.ID, name=name, size=size, sql_type=integer_type_for_size(size))

    @classmethod
    def text(cls, role: ColumnRole, name: str | None = None, size: int | None = DEFAULT_NAME_SIZE) -> "ColumnDescriptor":
        return cls(role=role, name=name or role.value, size=size, sql_type=SqlType.NVARCHAR)

    @classmethod
    def is_active(cls, name: str = "IsActive") -> "ColumnDescriptor":
        return cls(role=ColumnRole.IS_ACTIVE, name=name, size=1, sql_type=SqlType.BIT)


def _text_of(value: ValueRecord, role: ColumnRole) -> str:
    if role == ColumnRole.NAME:
        return value.name
    if role == ColumnRole.DISPLAY_NAME:
        return value.display_name
    return value.description


class EnumDescriptor(BaseModel):
    """Resolved, validated replication target for one enumeration.

    ``columns`` are kept in the fixed order Id, Name, DisplayName,
    Description, IsActive; ``values`` are sorted ascending by identity.

    Raises:
        ConfigurationError: When any construction-time invariant fails.
    """

    model_config = ConfigDict(frozen=True)

    full_name: str
    schema_name: str = "dbo"
    table_name: str
    deletion_policy: DeletionPolicy = DeletionPolicy.MARK_INACTIVE
    backing_size: int = 1
    columns: tuple[ColumnDescriptor, ...]
    values: tuple[ValueRecord, ...] = ()

    @field_validator("schema_name", "table_name", mode="before")
    @classmethod
    def _trim(cls, value: str) -> str:
        return trim_sql_name(value or "")

    @field_validator("deletion_policy", mode="before")
    @classmethod
    def _parse_policy(cls, value: str) -> DeletionPolicy:
        return DeletionPolicy.parse(value)

    @field_validator("columns", mode="after")
    @classmethod
    def _order_columns(cls, columns: tuple[ColumnDescriptor, ...]) -> tuple[ColumnDescriptor, ...]:
        return tuple(sorted(columns, key=lambda col: COLUMN_ORDER.index(col.role)))

    @field_validator("values", mode="after")
    @classmethod
    def _sort_values(cls, values: tuple[ValueRecord, ...]) -> tuple[ValueRecord, ...]:
        return tuple(sorted(values, key=lambda value: value.identity))

    @model_validator(mode="after")
    def _validate(self) -> "EnumDescriptor":
        where = f"Enum: {self.full_name}"

        for label, name in (("Schema", self.schema_name), ("Table", self.table_name)):
            if not name:
                raise ConfigurationError(f"{label} name cannot be null or empty. {where}")
            if "[" in name or "]" in name:
                raise ConfigurationError(f'{label} name "{name}" cannot contain brackets. {where}')

        roles = [col.role for col in self.columns]
        if len(set(roles)) != len(roles):
            raise ConfigurationError(f"Duplicate column roles. {where}")
        if not roles or roles[0] != ColumnRole.ID:
            raise ConfigurationError(f"The Id column is required. {where}")

        lowered = [col.name.lower() for col in self.columns]
        if len(set(lowered)) != len(lowered):
            raise ConfigurationError(f"Column names must be unique. {where}")

        id_col = self.columns[0]
        if self.backing_size not in INTEGER_RANGES:
            raise ConfigurationError(f"Backing size {self.backing_size} is not 1, 2, 4, or 8. {where}")
        if id_col.size < self.backing_size:
            raise ConfigurationError(f"IdColumnSize is smaller than the enum's backing type. {where}")

        low, high = INTEGER_RANGES[id_col.size]
        previous: int | None = None
        for value in self.values:
            if not low <= value.identity <= high:
                raise ConfigurationError(
                    f"Enum value {value.name} ({value.identity}) does not fit in "
                    f"{id_col.sized_sql_type} column {id_col.name}. {where}"
                )
            if value.identity == previous:
                raise ConfigurationError(
                    f"Duplicate enum value {value.identity} ({value.name}). {where}"
                )
            previous = value.identity

        if self.deletion_policy == DeletionPolicy.MARK_INACTIVE and not self.has(ColumnRole.IS_ACTIVE):
            raise ConfigurationError(
                f"DeletionMode is {DeletionPolicy.MARK_INACTIVE.value}, but the "
                f"{ColumnRole.IS_ACTIVE.value} column is disabled. {where}"
            )

        for col in self.columns:
            if col.role not in TEXT_ROLES or col.size is None:
                continue
            for value in self.values:
                if len(_text_of(value, col.role)) > col.size:
                    raise ConfigurationError(
                        f"Enum value {col.role.value} exceeds the maximum length of {col.size}.\n"
                        f"  {where}\n  Value: {value.name}"
                    )

        return self

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def id_column(self) -> ColumnDescriptor:
        return self.columns[0]

    def column(self, role: ColumnRole) -> ColumnDescriptor | None:
        """The enabled column for ``role``, or ``None`` if disabled."""
        for col in self.columns:
            if col.role == role:
                return col
        return None

    def has(self, role: ColumnRole) -> bool:
        return self.column(role) is not None

    @property
    def is_active_column(self) -> ColumnDescriptor | None:
        return self.column(ColumnRole.IS_ACTIVE)

    @property
    def qualified_name(self) -> str:
        return f"{self.schema_name}.{self.table_name}"

    @property
    def qualified_sql_name(self) -> str:
        return f"{bracket_name(self.schema_name)}.{bracket_name(self.table_name)}"
