"""PostgreSQL executor backed by an asyncpg connection pool."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Sequence

import asyncpg

from ..errors import (
    ConstraintViolationError,
    EnsembleError,
    QuerySyntaxError,
    StoreConnectionError,
)
from ..executor import ExecuteResult

logger = logging.getLogger(__name__)


def wrap_asyncpg_error(err: BaseException) -> EnsembleError:
    """Translate an asyncpg / transport exception into the ensemble taxonomy."""
    message = str(err) or type(err).__name__
    if isinstance(err, asyncpg.exceptions.IntegrityConstraintViolationError):
        detail = {
            "sqlstate": getattr(err, "sqlstate", None),
            "constraint": getattr(err, "constraint_name", None),
            "detail": getattr(err, "detail", None),
        }
        return ConstraintViolationError(message, detail=detail)
    if isinstance(err, asyncpg.exceptions.SyntaxOrAccessError):
        return QuerySyntaxError(message)
    if isinstance(
        err,
        (
            asyncpg.exceptions.PostgresConnectionError,
            asyncpg.exceptions.InterfaceError,
            OSError,
            asyncio.TimeoutError,
        ),
    ):
        return StoreConnectionError(message)
    return EnsembleError(message)


def parse_status_count(status: Optional[str]) -> int:
    """``"UPDATE 5"`` -> 5, ``"INSERT 0 1"`` -> 1, ``"TRUNCATE TABLE"`` -> 0."""
    if not status:
        return 0
    last = status.split()[-1]
    return int(last) if last.isdigit() else 0


class PostgresExecutor:
    """Runs statements on a pooled connection, or on one pinned connection."""

    def __init__(self, pool: Any = None, *, connection: Any = None) -> None:
        if (pool is None) == (connection is None):
            raise TypeError("PostgresExecutor requires exactly one of pool or connection")
        self._pool = pool
        self._connection = connection

    @classmethod
    async def connect(cls, dsn: str, **options: Any) -> "PostgresExecutor":
        try:
            pool = await asyncpg.create_pool(dsn, **options)
        except (asyncpg.PostgresError, asyncpg.exceptions.InterfaceError, OSError, asyncio.TimeoutError) as err:
            raise wrap_asyncpg_error(err) from err
        return cls(pool)

    @asynccontextmanager
    async def _acquire(self) -> AsyncIterator[Any]:
        if self._connection is not None:
            yield self._connection
            return
        async with self._pool.acquire() as connection:
            yield connection

    async def execute(self, sql: str, params: Sequence[Any]) -> ExecuteResult:
        try:
            async with self._acquire() as connection:
                statement = await connection.prepare(sql)
                records = await statement.fetch(*params)
                status = statement.get_statusmsg()
        except (asyncpg.PostgresError, asyncpg.exceptions.InterfaceError, OSError, asyncio.TimeoutError) as err:
            raise wrap_asyncpg_error(err) from err
        rows = [dict(record) for record in records]
        return ExecuteResult(rows=rows, rowcount=parse_status_count(status))

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["PostgresExecutor"]:
        async with self._acquire() as connection:
            async with connection.transaction():
                logger.debug("postgres transaction started")
                yield PostgresExecutor(connection=connection)
