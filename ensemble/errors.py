"""Typed exception hierarchy shared by every ensemble layer."""

from __future__ import annotations

from typing import Any, Optional


class ErrorCode:
    """Error codes attached to every :class:`EnsembleError`."""
    UNKNOWN = "UNKNOWN"
    CONFIGURATION = "CONFIGURATION"
    DECODE = "DECODE"
    UNEXPECTED_NULL = "UNEXPECTED_NULL"
    CONNECTION = "CONNECTION"
    SYNTAX = "SYNTAX"
    CONSTRAINT = "CONSTRAINT"
    NOT_FOUND = "NOT_FOUND"
    PARTIALLY_PERSISTED = "PARTIALLY_PERSISTED"
    UNCONSTRAINED_MUTATION = "UNCONSTRAINED_MUTATION"
    REQUIRED = "REQUIRED"


class EnsembleError(Exception):
    """Base exception class for all ensemble errors."""

    def __init__(self, message: str, code: str = ErrorCode.UNKNOWN):
        super().__init__(message)
        self.code = code


class ConfigurationError(EnsembleError):
    """Raised when a model declaration or connection setting is invalid."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.CONFIGURATION)


class DecodeError(EnsembleError):
    """Raised when a database cell cannot be converted to its field type."""

    def __init__(self, message: str, column: Optional[str] = None, code: str = ErrorCode.DECODE):
        super().__init__(message, code)
        self.column = column

    def for_column(self, column: str) -> "DecodeError":
        """Return a copy of this error annotated with the failing column."""
        return type(self)(f"column '{column}': {self}", column, self.code)


class UnexpectedNullError(DecodeError):
    """Raised when NULL is read into a non-nullable field."""

    def __init__(self, message: str, column: Optional[str] = None, code: str = ErrorCode.UNEXPECTED_NULL):
        super().__init__(message, column, code)


class StoreConnectionError(EnsembleError):
    """Raised when the driver cannot reach or talk to the store."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.CONNECTION)


class QuerySyntaxError(EnsembleError):
    """Raised when the store rejects a statement as malformed."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.SYNTAX)


class ConstraintViolationError(EnsembleError):
    """Raised when the store rejects a write (unique, foreign key, not null)."""

    def __init__(self, message: str, detail: Optional[Any] = None):
        super().__init__(message, ErrorCode.CONSTRAINT)
        self.detail = detail


class NotFoundError(EnsembleError):
    """Raised when a lookup by key matches no row."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.NOT_FOUND)


class PartiallyPersistedError(EnsembleError):
    """Raised when an insert succeeded but its generated key could not be read back.

    The row exists in the store; ``instance`` is the in-memory record whose
    primary key is still unset.
    """

    def __init__(self, message: str, instance: Any = None):
        super().__init__(message, ErrorCode.PARTIALLY_PERSISTED)
        self.instance = instance


class UnconstrainedMutationError(EnsembleError):
    """Raised when update()/delete() would touch every row without all_rows()."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.UNCONSTRAINED_MUTATION)


class RequiredFieldError(EnsembleError):
    """Raised before an insert when a required column has no value."""

    def __init__(self, message: str, column: Optional[str] = None):
        super().__init__(message, ErrorCode.REQUIRED)
        self.column = column

