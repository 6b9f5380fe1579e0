"""Find enums marked for replication and build their descriptors.

Enums opt in with the ``@replicate`` decorator, which stores a
``ReplicationConfig`` on the class.  ``describe_enum`` turns a decorated
enum into a validated ``EnumDescriptor``; ``find_enums`` imports modules and
collects every decorated enum they define.

Member descriptions come from the decorator's ``descriptions`` mapping
first, then from a ``#:`` comment directly above the member (or trailing
it on the same line), and are empty otherwise.

Usage:
    from enum import IntEnum
    from enum_to_sql.discovery import replicate

    @replicate(table="OrderStatus", deprecated={"Legacy"})
    class OrderStatus(IntEnum):
        #: Order placed, not yet paid
        Open = 1
        Paid = 2
        Legacy = 9
"""

import importlib
import importlib.util
import inspect
import logging
import re
import sys
from enum import Enum
from pathlib import Path
from types import ModuleType
from typing import Callable, Iterable, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from enum_to_sql.exceptions import ConfigurationError
from enum_to_sql.schema.models import (
    DEFAULT_NAME_SIZE,
    ColumnDescriptor,
    ColumnRole,
    DeletionPolicy,
    EnumDescriptor,
    ValueRecord,
    minimal_integer_size,
    widen_identity,
)

logger = logging.getLogger(__name__)

CONFIG_ATTR = "__enum_to_sql__"

E = TypeVar("E", bound=type[Enum])

_MEMBER_LINE = re.compile(r"^([A-Za-z_]\w*)\s*(?::[^=]+)?=")
_TRAILING_DOC = re.compile(r"#:\s*(.*)$")


class ReplicationConfig(BaseModel):
    """Per-enum replication settings.

    Defaults: schema ``dbo``, ``MarkInactive`` deletion, ``Id`` column sized
    to the values (at least ``int``), ``Name``/``DisplayName`` as
    ``nvarchar(250)``, ``Description`` as ``nvarchar(max)``, and an
    ``IsActive`` bit column.
    """

    model_config = ConfigDict(extra="forbid")

    table: str
    schema_name: str = "dbo"
    deletion_policy: DeletionPolicy = DeletionPolicy.MARK_INACTIVE

    id_column: str = "Id"
    id_column_size: int | None = None

    name_column: str = "Name"
    name_column_size: int | None = DEFAULT_NAME_SIZE
    name_column_enabled: bool = True

    display_name_column: str = "DisplayName"
    display_name_column_size: int | None = DEFAULT_NAME_SIZE
    display_name_column_enabled: bool = True

    description_column: str = "Description"
    description_column_size: int | None = None
    description_column_enabled: bool = True

    is_active_column: str = "IsActive"
    is_active_column_enabled: bool = True

    display_names: dict[str, str] = Field(default_factory=dict)
    descriptions: dict[str, str] = Field(default_factory=dict)
    deprecated: set[str] = Field(default_factory=set)

    @field_validator("deletion_policy", mode="before")
    @classmethod
    def _parse_policy(cls, value: str) -> DeletionPolicy:
        return DeletionPolicy.parse(value)


def replicate(table: str, **options) -> Callable[[E], E]:
    """Class decorator marking an enum for replication to ``table``.

    Args:
        table: Target table name.
        **options: Any other ``ReplicationConfig`` field.

    Raises:
        TypeError: If applied to something other than an ``Enum`` subclass.
    """
    config = ReplicationConfig(table=table, **options)

    def decorator(enum_cls: E) -> E:
        if not (isinstance(enum_cls, type) and issubclass(enum_cls, Enum)):
            raise TypeError(f"@replicate can only decorate Enum classes, not {enum_cls!r}")
        setattr(enum_cls, CONFIG_ATTR, config)
        return enum_cls

    return decorator


def get_config(enum_cls: type[Enum]) -> ReplicationConfig | None:
    """The class's own ``ReplicationConfig``, ignoring inherited ones."""
    return enum_cls.__dict__.get(CONFIG_ATTR)


def full_name(enum_cls: type) -> str:
    return f"{enum_cls.__module__}.{enum_cls.__qualname__}"


# ------------------------------------------------------------------
# Descriptions from source comments
# ------------------------------------------------------------------


def source_comments(enum_cls: type[Enum]) -> dict[str, str]:
    """Collect ``#:`` doc comments for members of ``enum_cls``.

    A run of ``#:`` lines documents the member assigned on the next line; a
    ``#:`` comment at the end of an assignment documents that member.
    Returns an empty dict when the source is unavailable.
    """
    try:
        lines, _ = inspect.getsourcelines(enum_cls)
    except (OSError, TypeError):
        return {}

    comments: dict[str, str] = {}
    pending: list[str] = []
    in_body = False
    for line in lines:
        stripped = line.strip()
        if not in_body:
            # decorator lines come before the class statement
            in_body = stripped.startswith("class ")
            continue
        if stripped.startswith("#:"):
            pending.append(stripped[2:].strip())
            continue

        match = _MEMBER_LINE.match(stripped)
        if match:
            trailing = _TRAILING_DOC.search(stripped)
            if trailing:
                comments[match.group(1)] = trailing.group(1).strip()
            elif pending:
                comments[match.group(1)] = " ".join(pending)
        pending = []

    return comments


# ------------------------------------------------------------------
# Descriptor construction
# ------------------------------------------------------------------


def _columns(config: ReplicationConfig, id_size: int) -> list[ColumnDescriptor]:
    columns = [ColumnDescriptor.id(config.id_column, id_size)]
    if config.name_column_enabled:
        columns.append(ColumnDescriptor.text(ColumnRole.NAME, config.name_column, config.name_column_size))
    if config.display_name_column_enabled:
        columns.append(
            ColumnDescriptor.text(ColumnRole.DISPLAY_NAME, config.display_name_column, config.display_name_column_size)
        )
    if config.description_column_enabled:
        columns.append(
            ColumnDescriptor.text(ColumnRole.DESCRIPTION, config.description_column, config.description_column_size)
        )
    if config.is_active_column_enabled:
        columns.append(ColumnDescriptor.is_active(config.is_active_column))
    return columns


def describe_enum(enum_cls: type[Enum], config: ReplicationConfig | None = None) -> EnumDescriptor:
    """Build the descriptor for one enum.

    Args:
        enum_cls: An ``Enum`` subclass with integer values.
        config: Settings to use instead of the class's decorator config.

    Raises:
        ConfigurationError: If the enum is not marked for replication or
            its configuration is invalid.
    """
    name = full_name(enum_cls)
    config = config or get_config(enum_cls)
    if config is None:
        raise ConfigurationError(f"Enum {name} is not marked with @replicate")

    comments = source_comments(enum_cls) if config.description_column_enabled else {}

    try:
        values = [
            ValueRecord(
                identity=widen_identity(member.value),
                name=member.name,
                display_name=config.display_names.get(member.name, member.name),
                description=config.descriptions.get(member.name) or comments.get(member.name, ""),
                is_active=member.name not in config.deprecated,
            )
            for member in enum_cls
        ]
        backing_size = minimal_integer_size(v.identity for v in values)
        columns = _columns(config, config.id_column_size or max(4, backing_size))
    except ConfigurationError as e:
        raise ConfigurationError(f"{e} Enum: {name}") from e

    return EnumDescriptor(
        full_name=name,
        schema_name=config.schema_name,
        table_name=config.table,
        deletion_policy=config.deletion_policy,
        backing_size=backing_size,
        columns=tuple(columns),
        values=tuple(values),
    )


# ------------------------------------------------------------------
# Module scanning
# ------------------------------------------------------------------


def load_module(spec: str) -> ModuleType:
    """Import a module by dotted name or by ``.py`` file path.

    Raises:
        ConfigurationError: If the module cannot be imported.
    """
    try:
        if spec.endswith(".py"):
            path = Path(spec).resolve()
            if not path.exists():
                raise FileNotFoundError(f"Module file not found: {path}")
            module_name = f"_enum_to_sql_{path.stem}"
            module_spec = importlib.util.spec_from_file_location(module_name, path)
            module = importlib.util.module_from_spec(module_spec)
            sys.modules[module_name] = module
            module_spec.loader.exec_module(module)
            return module
        return importlib.import_module(spec)
    except Exception as e:
        raise ConfigurationError(f"Unable to load module {spec}: {e}") from e


def enums_in_module(module: ModuleType) -> list[type[Enum]]:
    """Decorated enums defined (not just imported) by ``module``, in order."""
    found = []
    for obj in vars(module).values():
        if (
            isinstance(obj, type)
            and issubclass(obj, Enum)
            and obj.__module__ == module.__name__
            and get_config(obj) is not None
        ):
            found.append(obj)
    return found


def find_enums(modules: Iterable[str]) -> list[EnumDescriptor]:
    """Import ``modules`` and describe every decorated enum they define.

    Raises:
        ConfigurationError: If a module fails to import, an enum's
            configuration is invalid, or two enums target the same table.
    """
    descriptors: list[EnumDescriptor] = []
    seen_classes: set[type] = set()
    tables: dict[str, str] = {}

    for spec in modules:
        module = load_module(spec)
        for enum_cls in enums_in_module(module):
            if enum_cls in seen_classes:
                continue
            seen_classes.add(enum_cls)

            desc = describe_enum(enum_cls)
            key = desc.qualified_name.lower()
            if key in tables:
                raise ConfigurationError(
                    f"Enums {tables[key]} and {desc.full_name} both replicate to {desc.qualified_name}"
                )
            tables[key] = desc.full_name
            logger.debug("Found enum %s -> %s", desc.full_name, desc.qualified_name)
            descriptors.append(desc)

    return descriptors
