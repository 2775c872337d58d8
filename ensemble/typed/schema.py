"""Schema declarations and normalization helpers for typed models."""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from typing_extensions import NotRequired, TypedDict

from ..errors import ConfigurationError
from ..values import FieldType, Integer, Nullable, Timestamp, Uuid

SUPPORTED_UUID_VERSIONS = (1, 4)
DEFAULT_CREATED_AT = "created_at"
DEFAULT_UPDATED_AT = "updated_at"


class ColumnDeclaration(TypedDict, total=False):
    """Column definition container used within ModelDeclaration."""

    type: FieldType
    primary: bool
    increments: bool
    default: Any


class TimestampDeclaration(TypedDict):
    created_at: str
    updated_at: str


class ModelDeclaration(TypedDict):
    columns: Mapping[str, ColumnDeclaration]
    table: NotRequired[str]
    timestamps: NotRequired[Union[bool, TimestampDeclaration]]


@dataclass(frozen=True)
class Column:
    name: str
    field_type: FieldType
    primary: bool = False
    incrementing: bool = False
    uuid_version: Optional[int] = None
    has_default: bool = False
    default: Any = None

    def default_value(self) -> Any:
        if not self.has_default:
            return None
        if callable(self.default):
            return self.default()
        # each record gets its own copy of a list or dict default
        return copy.deepcopy(self.default)


@dataclass(frozen=True)
class TimestampColumns:
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class ModelSchema:
    """Immutable per-model metadata consumed by the query and model layers."""

    table_name: str
    columns: Tuple[Column, ...]
    primary_key: Column
    timestamps: Optional[TimestampColumns] = None

    @property
    def column_names(self) -> List[str]:
        return [column.name for column in self.columns]

    def column(self, name: str) -> Column:
        for column in self.columns:
            if column.name == name:
                return column
        raise ValueError(f"Unknown column '{name}' on table '{self.table_name}'")

    def has_column(self, name: str) -> bool:
        return any(column.name == name for column in self.columns)


_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def snake_case(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


_IRREGULAR_PLURALS = {
    "person": "people",
    "child": "children",
    "man": "men",
    "woman": "women",
    "mouse": "mice",
    "goose": "geese",
    "tooth": "teeth",
    "foot": "feet",
    "datum": "data",
    "index": "indices",
}


def pluralize(word: str) -> str:
    head, sep, last = word.rpartition("_")
    if last in _IRREGULAR_PLURALS:
        return head + sep + _IRREGULAR_PLURALS[last]
    if re.search(r"[^aeiou]y$", word):
        return word[:-1] + "ies"
    if re.search(r"(s|x|z|ch|sh)$", word):
        return word + "es"
    return word + "s"


def default_table_name(model_name: str) -> str:
    """``UserProfile`` -> ``user_profiles``."""
    return pluralize(snake_case(model_name))


def _normalize_column(model_name: str, name: Any, definition: Any) -> Column:
    if not isinstance(name, str) or not _IDENTIFIER.match(name):
        raise ConfigurationError(f"{model_name}: invalid column name {name!r}")
    if not isinstance(definition, Mapping):
        raise ConfigurationError(f"{model_name}: definition for column '{name}' must be a mapping")
    field_type = definition.get("type")
    if not isinstance(field_type, FieldType):
        raise ConfigurationError(f"{model_name}: column '{name}' requires a field type")
    primary = bool(definition.get("primary", False))
    increments = definition.get("increments")
    has_default = "default" in definition
    if not primary:
        if increments:
            raise ConfigurationError(f"{model_name}: only the primary key may increment ('{name}')")
        return Column(
            name=name,
            field_type=field_type,
            has_default=has_default,
            default=definition.get("default"),
        )

    if isinstance(field_type, Nullable):
        raise ConfigurationError(f"{model_name}: primary key '{name}' cannot be nullable")
    incrementing = False
    uuid_version: Optional[int] = None
    if isinstance(field_type, Integer) and field_type.unsigned and field_type.bits == 64:
        incrementing = True if increments is None else bool(increments)
    elif increments:
        raise ConfigurationError(
            f"{model_name}: primary key '{name}' can only increment when it is an unsigned 64-bit integer"
        )
    if isinstance(field_type, Uuid):
        if field_type.version not in SUPPORTED_UUID_VERSIONS:
            raise ConfigurationError(
                f"{model_name}: unsupported UUID version {field_type.version} for '{name}'"
            )
        uuid_version = field_type.version
    return Column(
        name=name,
        field_type=field_type,
        primary=True,
        incrementing=incrementing,
        uuid_version=uuid_version,
        has_default=has_default,
        default=definition.get("default"),
    )


def _normalize_timestamps(
    model_name: str, raw: Any, columns: Dict[str, Column]
) -> Optional[TimestampColumns]:
    if raw is False:
        return None
    if raw is None or raw is True:
        created, updated = DEFAULT_CREATED_AT, DEFAULT_UPDATED_AT
        if raw is None and (created not in columns or updated not in columns):
            return None
    elif isinstance(raw, Mapping):
        created = raw.get("created_at")
        updated = raw.get("updated_at")
        if not isinstance(created, str) or not isinstance(updated, str):
            raise ConfigurationError(
                f"{model_name}: timestamps must name both 'created_at' and 'updated_at' columns"
            )
    else:
        raise ConfigurationError(f"{model_name}: 'timestamps' must be a bool or a mapping")

    for name in (created, updated):
        column = columns.get(name)
        if column is None:
            raise ConfigurationError(f"{model_name}: timestamp column '{name}' is not declared")
        if not isinstance(column.field_type.base, Timestamp):
            raise ConfigurationError(f"{model_name}: timestamp column '{name}' must be a Timestamp")
    if created == updated:
        raise ConfigurationError(f"{model_name}: creation and update timestamps must differ")
    return TimestampColumns(created_at=created, updated_at=updated)


def normalize_model_schema(declaration: ModelDeclaration, *, model_name: str) -> ModelSchema:
    if not isinstance(declaration, Mapping):
        raise ConfigurationError(f"{model_name}: model schema must be a mapping")

    raw_columns = declaration.get("columns")
    if not isinstance(raw_columns, Mapping) or not raw_columns:
        raise ConfigurationError(f"{model_name}: schema must declare at least one column")

    table = declaration.get("table")
    if table is None:
        table = default_table_name(model_name)
    elif not isinstance(table, str) or not _IDENTIFIER.match(table):
        raise ConfigurationError(f"{model_name}: invalid table name {table!r}")

    columns: Dict[str, Column] = {}
    for name, definition in raw_columns.items():
        columns[name] = _normalize_column(model_name, name, definition)

    primaries = [column for column in columns.values() if column.primary]
    if not primaries:
        raise ConfigurationError(f"{model_name}: a primary key column is required")
    if len(primaries) > 1:
        names = ", ".join(column.name for column in primaries)
        raise ConfigurationError(f"{model_name}: composite primary keys are not supported ({names})")

    timestamps = _normalize_timestamps(model_name, declaration.get("timestamps"), columns)
    return ModelSchema(
        table_name=table,
        columns=tuple(columns.values()),
        primary_key=primaries[0],
        timestamps=timestamps,
    )
