"""SQLite executor backed by aiosqlite."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Optional, Sequence

import aiosqlite

from ..errors import (
    ConstraintViolationError,
    EnsembleError,
    QuerySyntaxError,
    StoreConnectionError,
)
from ..executor import ExecuteResult

logger = logging.getLogger(__name__)

_CONNECTION_MARKERS = (
    "unable to open",
    "database is locked",
    "disk i/o error",
    "closed database",
    "readonly database",
)


def wrap_sqlite_error(err: sqlite3.Error) -> EnsembleError:
    """Translate a sqlite3 exception into the ensemble taxonomy."""
    message = str(err)
    lowered = message.lower()
    if isinstance(err, sqlite3.IntegrityError):
        return ConstraintViolationError(message, detail=getattr(err, "sqlite_errorname", None))
    if any(marker in lowered for marker in _CONNECTION_MARKERS):
        return StoreConnectionError(message)
    if isinstance(err, (sqlite3.OperationalError, sqlite3.ProgrammingError)):
        return QuerySyntaxError(message)
    return EnsembleError(message)


class SQLiteExecutor:
    """Runs statements on a single aiosqlite connection in autocommit mode.

    Transactions and multi-statement sequences hold the connection lock, so
    statements from other tasks wait instead of joining an open transaction.
    The handle yielded while the lock is held runs statements directly.
    """

    def __init__(self, connection: aiosqlite.Connection, *, parent: Optional["SQLiteExecutor"] = None) -> None:
        self._conn = connection
        self._parent = parent
        self._lock = asyncio.Lock() if parent is None else parent._lock
        self._owner: Optional["asyncio.Task[Any]"] = None

    @classmethod
    async def connect(cls, path: str, **options: Any) -> "SQLiteExecutor":
        options.setdefault("isolation_level", None)
        try:
            connection = await aiosqlite.connect(path, **options)
        except sqlite3.Error as err:
            raise StoreConnectionError(f"cannot open sqlite database '{path}': {err}") from err
        return cls(connection)

    async def execute(self, sql: str, params: Sequence[Any]) -> ExecuteResult:
        if self._parent is not None:
            return await self._run(sql, params)
        self._reject_reentry()
        async with self._lock:
            return await self._run(sql, params)

    async def _run(self, sql: str, params: Sequence[Any]) -> ExecuteResult:
        try:
            cursor = await self._conn.execute(sql, list(params))
            try:
                rows = await cursor.fetchall()
                description = cursor.description
                rowcount = cursor.rowcount
            finally:
                await cursor.close()
        except sqlite3.Error as err:
            raise wrap_sqlite_error(err) from err
        names: List[str] = [entry[0] for entry in description] if description else []
        records = [dict(zip(names, row)) for row in rows]
        return ExecuteResult(rows=records, rowcount=rowcount if rowcount >= 0 else len(records))

    async def close(self) -> None:
        if self._parent is None:
            await self._conn.close()

    def _reject_reentry(self) -> None:
        # the lock is not reentrant; waiting on it here would deadlock
        if self._owner is not None and self._owner is asyncio.current_task():
            raise RuntimeError("this task holds the sqlite connection; use the handle it yielded")

    @asynccontextmanager
    async def _hold(self) -> AsyncIterator["SQLiteExecutor"]:
        self._reject_reentry()
        async with self._lock:
            self._owner = asyncio.current_task()
            try:
                yield SQLiteExecutor(self._conn, parent=self)
            finally:
                self._owner = None

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator["SQLiteExecutor"]:
        """Hold the connection for several statements without a transaction."""
        if self._parent is not None:
            yield self
            return
        async with self._hold() as pinned:
            yield pinned

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["SQLiteExecutor"]:
        if self._parent is not None:
            raise RuntimeError("nested transactions are not supported on sqlite")
        async with self._hold() as pinned:
            await pinned._run("BEGIN", [])
            try:
                yield pinned
            except BaseException:
                logger.debug("rolling back sqlite transaction")
                await pinned._run("ROLLBACK", [])
                raise
            else:
                await pinned._run("COMMIT", [])
