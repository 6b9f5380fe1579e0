"""Decode a live table's rows into ``Row`` records.

Rows arrive as positional tuples in physical column order.  The reconciled
``ColumnMapping`` says which position holds which role; disabled roles get
neutral values.  Identities are decoded from their declared integer width
into the signed 64-bit form the planner compares on.
"""

from typing import Any, Sequence

from enum_to_sql.exceptions import PlanInvariantError
from enum_to_sql.schema.models import INTEGER_RANGES, ColumnRole, EnumDescriptor, Row
from enum_to_sql.schema.reconciler import ColumnMapping


def decode_identity(raw: Any, size: int) -> int:
    """Decode an Id column value of ``size`` bytes into a signed 64-bit int.

    Accepts a Python ``int`` (range-checked for the width) or big-endian
    ``bytes`` of exactly ``size`` bytes.  ``tinyint`` (size 1) is unsigned.

    Raises:
        ValueError: If ``size`` is not 1, 2, 4 or 8, or the value does not
            fit the declared width.

    Example:
        >>> decode_identity(b"\\xff\\xfe", 2)
        -2
    """
    if size not in INTEGER_RANGES:
        raise ValueError(f"Unexpected Id column size {size}")

    if isinstance(raw, (bytes, bytearray)):
        if len(raw) != size:
            raise ValueError(f"Expected {size} bytes for Id column, got {len(raw)}")
        return int.from_bytes(raw, "big", signed=size != 1)

    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ValueError(f"Unexpected Id column value {raw!r}")

    low, high = INTEGER_RANGES[size]
    if not low <= raw <= high:
        raise ValueError(f"Id value {raw} does not fit in {size} bytes")
    return raw


def read_rows(
    desc: EnumDescriptor,
    mapping: ColumnMapping,
    raw_rows: Sequence[Sequence[Any]],
) -> list[Row]:
    """Map raw result rows to ``Row`` records ordered by id ascending.

    Args:
        desc: The enum's descriptor.
        mapping: Verified role -> ordinal mapping from ``reconcile_schema``.
        raw_rows: Rows from ``select * ... order by Id asc``.

    Raises:
        PlanInvariantError: If the rows are not strictly ascending by id.
    """
    id_size = desc.id_column.size
    id_pos = mapping[ColumnRole.ID]
    name_pos = mapping.get(ColumnRole.NAME)
    display_pos = mapping.get(ColumnRole.DISPLAY_NAME)
    desc_pos = mapping.get(ColumnRole.DESCRIPTION)
    active_pos = mapping.get(ColumnRole.IS_ACTIVE)

    rows: list[Row] = []
    for raw in raw_rows:
        row = Row(
            id=decode_identity(raw[id_pos], id_size),
            name=raw[name_pos] if name_pos is not None else "",
            display_name=raw[display_pos] if display_pos is not None else "",
            description=raw[desc_pos] if desc_pos is not None else "",
            is_active=bool(raw[active_pos]) if active_pos is not None else True,
        )
        if rows and row.id <= rows[-1].id:
            raise PlanInvariantError(
                f"Rows from {desc.qualified_name} are not strictly ascending by id "
                f"({rows[-1].id} then {row.id})"
            )
        rows.append(row)

    return rows
