from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, Optional, Sequence, Tuple

import pytest

from ensemble import Database, ExecuteResult, get_dialect


class RecordingExecutor:
    """Executor double that records every statement and replays canned results."""

    def __init__(self, results: Optional[Sequence[ExecuteResult]] = None) -> None:
        self.calls: List[Tuple[str, List[Any]]] = []
        self.results = list(results or [])
        self.closed = False

    async def execute(self, sql: str, params: Sequence[Any]) -> ExecuteResult:
        self.calls.append((sql, list(params)))
        if self.results:
            return self.results.pop(0)
        return ExecuteResult()

    async def close(self) -> None:
        self.closed = True

    @asynccontextmanager
    async def transaction(self):
        self.calls.append(("BEGIN", []))
        try:
            yield self
        except BaseException:
            self.calls.append(("ROLLBACK", []))
            raise
        self.calls.append(("COMMIT", []))

    @property
    def statements(self) -> List[str]:
        return [sql for sql, _ in self.calls]


class TickingClock:
    """Deterministic clock advancing one second per reading."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.current = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        self.readings: List[datetime] = []

    def __call__(self) -> datetime:
        self.current = self.current + timedelta(seconds=1)
        self.readings.append(self.current)
        return self.current


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def fake_db(clock: TickingClock) -> Callable[..., Tuple[Database, RecordingExecutor]]:
    def build(dialect: str = "sqlite", results: Optional[Sequence[ExecuteResult]] = None, executor: Any = None):
        recorder = executor if executor is not None else RecordingExecutor(results)
        return Database(recorder, get_dialect(dialect), clock=clock), recorder

    return build


@pytest.fixture
def memory_db(clock: TickingClock) -> Callable[[], Any]:
    """Open a fresh in-memory SQLite database with the ``users`` table."""

    async def open_db() -> Database:
        db = await Database.open("sqlite://:memory:", clock=clock)
        await db.execute(
            "CREATE TABLE users ("
            "id INTEGER PRIMARY KEY AUTOINCREMENT, "
            "name TEXT NOT NULL, "
            "age INTEGER, "
            "created_at TEXT NOT NULL, "
            "updated_at TEXT NOT NULL)"
        )
        return db

    return open_db
