"""Executor protocol and the Database handle that owns a driver connection."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, AsyncContextManager, AsyncIterator, Callable, Dict, List, Optional, Sequence, Tuple, Type, TypeVar

from typing_extensions import Protocol

from .dialects import Dialect, Statement, get_dialect
from .errors import ConfigurationError, StoreConnectionError
from .values import utc_now

if TYPE_CHECKING:
    from .query import QueryBuilder
    from .typed.model import Model

logger = logging.getLogger(__name__)

DATABASE_URL_ENV = "DATABASE_URL"

ModelT = TypeVar("ModelT", bound="Model")


@dataclass
class ExecuteResult:
    """Rows returned by a statement plus the number of rows it touched."""

    rows: List[Dict[str, Any]] = field(default_factory=list)
    rowcount: int = 0


class Executor(Protocol):
    """Capability contract implemented by the drivers in ``ensemble.drivers``."""

    async def execute(self, sql: str, params: Sequence[Any]) -> ExecuteResult: ...

    async def close(self) -> None: ...

    def transaction(self) -> AsyncContextManager["Executor"]: ...


def _split_url(url: str) -> Tuple[str, str]:
    scheme, sep, rest = url.partition("://")
    if not sep or not scheme:
        raise ConfigurationError(f"database URL must look like '<scheme>://...', got {url!r}")
    return scheme.lower(), rest


class Database:
    """Connection handle pairing an executor with its SQL dialect."""

    def __init__(
        self,
        executor: Executor,
        dialect: Dialect,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if not isinstance(dialect, Dialect):
            raise TypeError("Database requires a Dialect instance")
        self._executor = executor
        self.dialect = dialect
        self._clock = clock or utc_now
        self._closed = False
        self._owns_executor = True

    @classmethod
    async def open(
        cls,
        url: Optional[str] = None,
        *,
        clock: Optional[Callable[[], datetime]] = None,
        **options: Any,
    ) -> "Database":
        """Connect using ``url`` or the ``DATABASE_URL`` environment variable.

        ``sqlite:///relative.db``, ``sqlite:////abs/path.db`` and
        ``sqlite://:memory:`` select the SQLite driver; ``postgres://`` and
        ``postgresql://`` select the PostgreSQL driver. Extra keyword options
        are forwarded to the driver's connect call.
        """
        resolved = url or os.getenv(DATABASE_URL_ENV)
        if not resolved:
            raise ConfigurationError(f"no database URL given and ${DATABASE_URL_ENV} is not set")
        scheme, rest = _split_url(resolved)
        if scheme == "sqlite":
            from .drivers.sqlite import SQLiteExecutor

            path = rest
            if path.startswith("/"):
                path = path[1:]
            if not path:
                raise ConfigurationError("sqlite URL requires a path or ':memory:'")
            executor: Executor = await SQLiteExecutor.connect(path, **options)
            dialect = get_dialect("sqlite")
        elif scheme in ("postgres", "postgresql"):
            from .drivers.postgres import PostgresExecutor

            executor = await PostgresExecutor.connect(resolved, **options)
            dialect = get_dialect("postgres")
        else:
            raise ConfigurationError(f"unsupported database scheme '{scheme}'")
        logger.info("opened %s database", dialect.name)
        return cls(executor, dialect, clock=clock)

    async def close(self) -> None:
        """Close the underlying executor. Calling close() twice is a no-op."""
        if self._closed:
            return
        self._closed = True
        if self._owns_executor:
            await self._executor.close()

    @property
    def is_closed(self) -> bool:
        return self._closed

    def _assert_open(self) -> None:
        if self._closed:
            raise StoreConnectionError("database is closed")

    async def __aenter__(self) -> "Database":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def now(self) -> datetime:
        """Current instant used for lifecycle timestamps."""
        return self._clock()

    def query(self, model: Type[ModelT]) -> "QueryBuilder[ModelT]":
        from .query import QueryBuilder

        return QueryBuilder(model, self)

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> ExecuteResult:
        self._assert_open()
        bound = self.dialect.adapt_params(params)
        logger.debug("execute %s params=%d", sql, len(bound))
        return await self._executor.execute(sql, bound)

    async def run(self, statement: Statement) -> Optional[ExecuteResult]:
        """Execute a rendered statement, honouring its guard probe."""
        if statement.guard is not None:
            probe = await self.execute(statement.guard)
            if not probe.rows:
                logger.debug("skipping statement, guard matched nothing: %s", statement.sql)
                return None
        return await self.execute(statement.sql, statement.params)

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator["Database"]:
        """Keep other tasks off the connection while the block runs.

        Executors without connection-scoped state (a pool) do not provide
        ``exclusive()``; the handle itself is yielded for them.
        """
        self._assert_open()
        hold = getattr(self._executor, "exclusive", None)
        if hold is None:
            yield self
            return
        async with hold() as bound:
            scoped = Database(bound, self.dialect, clock=self._clock)
            scoped._owns_executor = False
            yield scoped

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["Database"]:
        """Run the enclosed operations on one connection inside a transaction."""
        self._assert_open()
        async with self._executor.transaction() as bound:
            scoped = Database(bound, self.dialect, clock=self._clock)
            # the executor belongs to the outer handle
            scoped._owns_executor = False
            yield scoped
