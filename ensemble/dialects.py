"""SQL dialect strategies used by the query renderer."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Type

from .errors import ConfigurationError

_IDENTIFIER_REGEX = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# MySQL has no "no limit" keyword; the manual recommends the largest u64.
_MYSQL_MAX_LIMIT = 18446744073709551615


@dataclass(frozen=True)
class DialectCapabilities:
    """Feature flags describing backend capabilities."""

    supports_returning: bool = False
    requires_limit_for_offset: bool = False


@dataclass(frozen=True)
class Statement:
    """A rendered SQL statement with its positional parameters.

    ``guard`` is an optional probe query; when it returns no rows the
    statement is skipped.
    """

    sql: str
    params: List[Any] = field(default_factory=list)
    guard: Optional[str] = None


class Dialect:
    """Strategy interface consumed by the query builder and model runtime."""

    name = "generic"
    param_style = "qmark"
    capabilities = DialectCapabilities()
    quote_char = '"'

    def quote_identifier(self, identifier: str) -> str:
        if not isinstance(identifier, str) or not _IDENTIFIER_REGEX.match(identifier):
            raise ValueError(f"invalid SQL identifier: {identifier!r}")
        return f"{self.quote_char}{identifier}{self.quote_char}"

    def placeholder(self, position: int) -> str:
        return "?"

    def limit_clause(self, limit: Optional[str], offset: Optional[str]) -> str:
        """Render LIMIT/OFFSET given already-bound placeholders."""
        parts: List[str] = []
        if limit is not None:
            parts.append(f"LIMIT {limit}")
        if offset is not None:
            parts.append(f"OFFSET {offset}")
        return " ".join(parts)

    def unbounded_limit(self) -> Optional[int]:
        """Limit value used when only an offset was requested."""
        return None

    def truncate(self, table: str) -> List[Statement]:
        raise NotImplementedError

    def last_insert_id(self, alias: str) -> Statement:
        raise NotImplementedError

    def adapt_param(self, value: Any) -> Any:
        """Convert an encoded field value to what the driver binds natively."""
        return value

    def adapt_params(self, values: Sequence[Any]) -> List[Any]:
        return [self.adapt_param(value) for value in values]

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class SQLiteDialect(Dialect):
    name = "sqlite"
    param_style = "qmark"
    capabilities = DialectCapabilities(supports_returning=False, requires_limit_for_offset=True)

    def unbounded_limit(self) -> Optional[int]:
        return -1

    def truncate(self, table: str) -> List[Statement]:
        return [
            Statement(f"DELETE FROM {self.quote_identifier(table)}"),
            Statement(
                "DELETE FROM sqlite_sequence WHERE name = ?",
                [table],
                guard="SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'sqlite_sequence'",
            ),
        ]

    def last_insert_id(self, alias: str) -> Statement:
        return Statement(f"SELECT last_insert_rowid() AS {self.quote_identifier(alias)}")

    def adapt_param(self, value: Any) -> Any:
        if isinstance(value, datetime):
            return value.isoformat()
        return value


class PostgresDialect(Dialect):
    name = "postgres"
    param_style = "numeric"
    capabilities = DialectCapabilities(supports_returning=True)

    def placeholder(self, position: int) -> str:
        return f"${position}"

    def truncate(self, table: str) -> List[Statement]:
        return [Statement(f"TRUNCATE TABLE {self.quote_identifier(table)} RESTART IDENTITY")]


class MySQLDialect(Dialect):
    name = "mysql"
    param_style = "format"
    capabilities = DialectCapabilities(supports_returning=False, requires_limit_for_offset=True)
    quote_char = "`"

    def placeholder(self, position: int) -> str:
        return "%s"

    def unbounded_limit(self) -> Optional[int]:
        return _MYSQL_MAX_LIMIT

    def truncate(self, table: str) -> List[Statement]:
        return [Statement(f"TRUNCATE TABLE {self.quote_identifier(table)}")]

    def last_insert_id(self, alias: str) -> Statement:
        return Statement(f"SELECT LAST_INSERT_ID() AS {self.quote_identifier(alias)}")

    def adapt_param(self, value: Any) -> Any:
        if isinstance(value, datetime):
            # DATETIME columns carry no zone; store UTC wall time
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value


_DIALECTS: Dict[str, Type[Dialect]] = {
    "sqlite": SQLiteDialect,
    "postgres": PostgresDialect,
    "postgresql": PostgresDialect,
    "mysql": MySQLDialect,
}


def get_dialect(name: str) -> Dialect:
    if not isinstance(name, str) or not name.strip():
        raise ConfigurationError("dialect name must be a non-empty string")
    dialect_cls = _DIALECTS.get(name.strip().lower())
    if dialect_cls is None:
        raise ConfigurationError(f"unknown SQL dialect '{name}'")
    return dialect_cls()
