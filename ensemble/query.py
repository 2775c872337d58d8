"""Fluent query builder rendering parameterized SQL for typed models."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Generic,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Type,
    TypeVar,
    Union,
)

from .dialects import Dialect
from .errors import UnconstrainedMutationError
from .typed.schema import ModelSchema

if TYPE_CHECKING:
    from .executor import Database
    from .typed.model import Model

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound="Model")
PredicatesT = TypeVar("PredicatesT", bound="_Predicates")

_COMPARISON_OPERATORS = {"=", "!=", "<>", "<", "<=", ">", ">=", "LIKE", "NOT LIKE"}
_LIST_OPERATORS = {"IN", "NOT IN"}
_NULL_OPERATORS = {"IS NULL", "IS NOT NULL"}
_DIRECTIONS = ("asc", "desc")
_MISSING = object()

Assignments = Union[Mapping[str, Any], Sequence[Tuple[str, Any]]]


@dataclass(frozen=True)
class Constraint:
    """A single predicate; ``value`` is already encoded for its column."""

    column: str
    operator: str
    value: Any = None


def _normalize_operator(operator: str) -> str:
    if not isinstance(operator, str) or not operator.strip():
        raise ValueError("operator must be a non-empty string")
    normalized = " ".join(operator.split()).upper()
    if normalized == "<>":
        normalized = "!="
    if normalized not in _COMPARISON_OPERATORS | _LIST_OPERATORS | _NULL_OPERATORS:
        raise ValueError(f"unsupported operator '{operator}'")
    return normalized


class _SqlWriter:
    """Collects positional parameters while a statement is rendered."""

    def __init__(self, dialect: Dialect) -> None:
        self._dialect = dialect
        self.params: List[Any] = []

    def bind(self, value: Any) -> str:
        self.params.append(value)
        return self._dialect.placeholder(len(self.params))

    def ident(self, name: str) -> str:
        return self._dialect.quote_identifier(name)


class _Predicates:
    """Constraint-accumulating methods shared by builders and nested groups."""

    _schema: ModelSchema

    def _push(self: PredicatesT, connector: str, node: Union[Constraint, "_ConstraintGroup"]) -> PredicatesT:
        raise NotImplementedError

    def where(self: PredicatesT, column: str, operator: str, value: Any = _MISSING) -> PredicatesT:
        return self._push("AND", self._constraint(column, operator, value))

    def or_where(self: PredicatesT, column: str, operator: str, value: Any = _MISSING) -> PredicatesT:
        return self._push("OR", self._constraint(column, operator, value))

    def where_null(self: PredicatesT, column: str) -> PredicatesT:
        return self.where(column, "IS NULL")

    def where_not_null(self: PredicatesT, column: str) -> PredicatesT:
        return self.where(column, "IS NOT NULL")

    def where_in(self: PredicatesT, column: str, values: Sequence[Any]) -> PredicatesT:
        return self.where(column, "IN", values)

    def where_group(self: PredicatesT, callback: Callable[["_ConstraintGroup"], Any]) -> PredicatesT:
        return self._push("AND", self._group(callback, "where_group"))

    def or_where_group(self: PredicatesT, callback: Callable[["_ConstraintGroup"], Any]) -> PredicatesT:
        return self._push("OR", self._group(callback, "or_where_group"))

    def _group(self, callback: Callable[["_ConstraintGroup"], Any], ctx: str) -> "_ConstraintGroup":
        if not callable(callback):
            raise TypeError(f"{ctx}() requires a callback")
        nested = _ConstraintGroup(self._schema)
        callback(nested)
        if not nested:
            raise ValueError(f"{ctx}() callback must add at least one constraint")
        return nested

    def _constraint(self, column: str, operator: str, value: Any) -> Constraint:
        field_type = self._schema.column(column).field_type
        op = _normalize_operator(operator)
        if op in _NULL_OPERATORS:
            if value is not _MISSING:
                raise ValueError(f"{op} does not take a value")
            return Constraint(column, op)
        if value is _MISSING:
            raise ValueError(f"operator {op} requires a value")
        if op in _LIST_OPERATORS:
            if not isinstance(value, Sequence) or isinstance(value, (str, bytes, bytearray)):
                raise TypeError(f"{op} requires a sequence of values")
            items = list(value)
            if not items:
                raise ValueError(f"{op} requires at least one value")
            if any(item is None for item in items):
                raise ValueError(f"{op} does not accept None; use where_null()")
            return Constraint(column, op, tuple(field_type.encode(item) for item in items))
        if value is None:
            raise ValueError(f"comparing '{column}' with None; use where_null() or where_not_null()")
        if op in ("LIKE", "NOT LIKE"):
            if not isinstance(value, str):
                raise TypeError(f"{op} requires a string pattern")
            return Constraint(column, op, value)
        return Constraint(column, op, field_type.encode(value))


class _ConstraintGroup(_Predicates):
    """Ordered constraints joined by AND/OR; rendered in parentheses when nested."""

    def __init__(self, schema: ModelSchema) -> None:
        self._schema = schema
        self._clauses: List[Tuple[str, Union[Constraint, "_ConstraintGroup"]]] = []

    def _push(self, connector: str, node: Union[Constraint, "_ConstraintGroup"]) -> "_ConstraintGroup":
        self._clauses.append((connector, node))
        return self

    def __len__(self) -> int:
        return len(self._clauses)

    def copy(self) -> "_ConstraintGroup":
        clone = _ConstraintGroup(self._schema)
        clone._clauses = list(self._clauses)
        return clone

    def render(self, writer: _SqlWriter) -> str:
        parts: List[str] = []
        for idx, (connector, node) in enumerate(self._clauses):
            if isinstance(node, _ConstraintGroup):
                sql = f"({node.render(writer)})"
            else:
                sql = _render_constraint(node, writer)
            parts.append(sql if idx == 0 else f"{connector} {sql}")
        return " ".join(parts)


def _render_constraint(constraint: Constraint, writer: _SqlWriter) -> str:
    column = writer.ident(constraint.column)
    if constraint.operator in _NULL_OPERATORS:
        return f"{column} {constraint.operator}"
    if constraint.operator in _LIST_OPERATORS:
        placeholders = ", ".join(writer.bind(item) for item in constraint.value)
        return f"{column} {constraint.operator} ({placeholders})"
    return f"{column} {constraint.operator} {writer.bind(constraint.value)}"


class QueryBuilder(_Predicates, Generic[ModelT]):
    """Accumulates constraints, ordering and pagination for one model.

    Fluent methods mutate the builder and return it; terminal coroutines
    render from the current state on every call and perform one round trip.
    """

    def __init__(self, model: Type[ModelT], db: "Database") -> None:
        schema = getattr(model, "__descriptor__", None)
        if not isinstance(schema, ModelSchema):
            raise TypeError("QueryBuilder requires a Model subclass with a schema")
        self._model = model
        self._db = db
        self._schema = schema
        self._where = _ConstraintGroup(schema)
        self._orders: List[Tuple[str, str]] = []
        self._limit: Optional[int] = None
        self._offset: Optional[int] = None
        self._all_rows = False

    @property
    def dialect(self) -> Dialect:
        return self._db.dialect

    def _push(self, connector: str, node: Union[Constraint, _ConstraintGroup]) -> "QueryBuilder[ModelT]":
        self._where._push(connector, node)
        return self

    def order_by(self, column: str, direction: str = "asc") -> "QueryBuilder[ModelT]":
        self._schema.column(column)
        if not isinstance(direction, str) or direction.lower() not in _DIRECTIONS:
            raise ValueError("direction must be 'asc' or 'desc'")
        self._orders.append((column, direction.lower()))
        return self

    def take(self, count: int) -> "QueryBuilder[ModelT]":
        self._limit = _non_negative(count, "take")
        return self

    def skip(self, count: int) -> "QueryBuilder[ModelT]":
        self._offset = _non_negative(count, "skip")
        return self

    def all_rows(self) -> "QueryBuilder[ModelT]":
        """Allow update()/delete() to run without constraints."""
        self._all_rows = True
        return self

    @property
    def constraints(self) -> List[Tuple[str, Union[Constraint, _ConstraintGroup]]]:
        return list(self._where._clauses)

    def render_select(self) -> Tuple[str, List[Any]]:
        writer = _SqlWriter(self.dialect)
        columns = ", ".join(writer.ident(name) for name in self._schema.column_names)
        sql = f"SELECT {columns} FROM {writer.ident(self._schema.table_name)}"
        sql += self._render_where(writer)
        if self._orders:
            keys = ", ".join(f"{writer.ident(column)} {direction.upper()}" for column, direction in self._orders)
            sql += f" ORDER BY {keys}"
        limit = self._limit
        if limit is None and self._offset is not None and self.dialect.capabilities.requires_limit_for_offset:
            limit = self.dialect.unbounded_limit()
        limit_clause = self.dialect.limit_clause(
            writer.bind(limit) if limit is not None else None,
            writer.bind(self._offset) if self._offset is not None else None,
        )
        if limit_clause:
            sql += f" {limit_clause}"
        return sql, writer.params

    def render_count(self) -> Tuple[str, List[Any]]:
        writer = _SqlWriter(self.dialect)
        sql = f"SELECT COUNT(*) AS {writer.ident('aggregate')} FROM {writer.ident(self._schema.table_name)}"
        sql += self._render_where(writer)
        return sql, writer.params

    def render_update(self, values: Assignments) -> Tuple[str, List[Any]]:
        assignments = self._assignments(values)
        writer = _SqlWriter(self.dialect)
        sets = ", ".join(f"{writer.ident(column)} = {writer.bind(value)}" for column, value in assignments)
        sql = f"UPDATE {writer.ident(self._schema.table_name)} SET {sets}"
        sql += self._render_where(writer)
        return sql, writer.params

    def render_insert(self, values: Mapping[str, Any], *, returning: Optional[str] = None) -> Tuple[str, List[Any]]:
        """Render an INSERT for one row; an empty mapping inserts defaults only."""
        writer = _SqlWriter(self.dialect)
        sql = f"INSERT INTO {writer.ident(self._schema.table_name)}"
        if values:
            assignments = self._assignments(values, "insert")
            columns = ", ".join(writer.ident(column) for column, _ in assignments)
            placeholders = ", ".join(writer.bind(value) for _, value in assignments)
            sql += f" ({columns}) VALUES ({placeholders})"
        else:
            sql += " DEFAULT VALUES"
        if returning is not None:
            if not self.dialect.capabilities.supports_returning:
                raise ValueError(f"{self.dialect.name} does not support RETURNING")
            sql += f" RETURNING {writer.ident(self._schema.column(returning).name)}"
        return sql, writer.params

    def render_delete(self) -> Tuple[str, List[Any]]:
        writer = _SqlWriter(self.dialect)
        sql = f"DELETE FROM {writer.ident(self._schema.table_name)}"
        sql += self._render_where(writer)
        return sql, writer.params

    async def get(self) -> List[ModelT]:
        sql, params = self.render_select()
        result = await self._db.execute(sql, params)
        return [self._model._hydrate(row) for row in result.rows]

    async def first(self) -> Optional[ModelT]:
        """Return the first matching record, or ``None`` when nothing matches."""
        rows = await self._copy().take(1).get()
        return rows[0] if rows else None

    async def count(self) -> int:
        sql, params = self.render_count()
        result = await self._db.execute(sql, params)
        if not result.rows:
            return 0
        return int(result.rows[0]["aggregate"])

    async def update(self, values: Assignments) -> int:
        """Apply ``values`` to every matching row and return the affected count.

        Models with timestamps get their update column stamped unless
        ``values`` sets it explicitly.
        """
        self._assert_constrained("update")
        stamped = self._with_update_timestamp(values)
        sql, params = self.render_update(stamped)
        result = await self._db.execute(sql, params)
        return result.rowcount

    async def delete(self) -> int:
        self._assert_constrained("delete")
        sql, params = self.render_delete()
        result = await self._db.execute(sql, params)
        return result.rowcount

    async def truncate(self) -> None:
        """Remove every row and reset the key sequence; constraints are ignored."""
        if self._where:
            logger.debug("truncate() ignores %d constraint(s)", len(self._where))
        async with self._db.exclusive() as pinned:
            for statement in self.dialect.truncate(self._schema.table_name):
                await pinned.run(statement)

    def _render_where(self, writer: _SqlWriter) -> str:
        if not self._where:
            return ""
        return f" WHERE {self._where.render(writer)}"

    def _assert_constrained(self, operation: str) -> None:
        if self._where:
            return
        if not self._all_rows:
            raise UnconstrainedMutationError(
                f"{operation}() without constraints would affect every row of "
                f"'{self._schema.table_name}'; call all_rows() first to confirm"
            )
        logger.info("%s() on every row of %s", operation, self._schema.table_name)

    def _assignments(self, values: Assignments, ctx: str = "update") -> List[Tuple[str, Any]]:
        pairs = list(values.items()) if isinstance(values, Mapping) else list(values)
        if not pairs:
            raise ValueError(f"{ctx}() requires at least one column")
        seen = set()
        assignments: List[Tuple[str, Any]] = []
        for pair in pairs:
            if not isinstance(pair, tuple) or len(pair) != 2:
                raise TypeError(f"{ctx}() values must be a mapping or (column, value) pairs")
            column, value = pair
            field_type = self._schema.column(column).field_type
            if column in seen:
                raise ValueError(f"column '{column}' assigned twice")
            seen.add(column)
            assignments.append((column, field_type.encode(value)))
        return assignments

    def _with_update_timestamp(self, values: Assignments) -> List[Tuple[str, Any]]:
        pairs = list(values.items()) if isinstance(values, Mapping) else list(values)
        timestamps = self._schema.timestamps
        if timestamps is not None and all(
            not (isinstance(pair, tuple) and pair and pair[0] == timestamps.updated_at) for pair in pairs
        ):
            pairs.append((timestamps.updated_at, self._db.now()))
        return pairs

    def _copy(self) -> "QueryBuilder[ModelT]":
        clone = copy.copy(self)
        clone._where = self._where.copy()
        clone._orders = list(self._orders)
        return clone


def _non_negative(value: int, ctx: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{ctx}() requires an integer")
    if value < 0:
        raise ValueError(f"{ctx}() requires a non-negative integer")
    return value
