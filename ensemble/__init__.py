"""Async record-mapping runtime for SQL stores."""

from . import typed
from .dialects import Dialect, MySQLDialect, PostgresDialect, SQLiteDialect, get_dialect
from .executor import Database, ExecuteResult, Executor
from .query import QueryBuilder
from .errors import (
    # Error types
    ErrorCode,
    EnsembleError,
    ConfigurationError,
    DecodeError,
    UnexpectedNullError,
    StoreConnectionError,
    QuerySyntaxError,
    ConstraintViolationError,
    NotFoundError,
    PartiallyPersistedError,
    UnconstrainedMutationError,
    RequiredFieldError,
)
from .typed import Model

__version__ = "0.1.0"

__all__ = [
    "version",
    "Database",
    "ExecuteResult",
    "Executor",
    "QueryBuilder",
    "Model",
    "typed",
    "Dialect",
    "SQLiteDialect",
    "PostgresDialect",
    "MySQLDialect",
    "get_dialect",
    # Error types
    "ErrorCode",
    "EnsembleError",
    "ConfigurationError",
    "DecodeError",
    "UnexpectedNullError",
    "StoreConnectionError",
    "QuerySyntaxError",
    "ConstraintViolationError",
    "NotFoundError",
    "PartiallyPersistedError",
    "UnconstrainedMutationError",
    "RequiredFieldError",
]


def version() -> str:
    """Return the package version string."""
    return __version__
