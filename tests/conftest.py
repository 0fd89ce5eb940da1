"""Shared fixtures: in-memory queue parts and psycopg stand-ins."""

from collections.abc import Generator, Iterator
from contextlib import contextmanager, nullcontext
from typing import Any

import pytest

from claimqueue.memory import MemoryJobStore
from claimqueue.wake import LocalWakeChannel


def sql_text(query: Any) -> str:
    """Readable form of a query for assertions (composables expose their parts in repr)."""
    return query if isinstance(query, str) else repr(query)


class FakeCursor:
    def __init__(self, conn: "FakeConnection") -> None:
        self.conn = conn
        self.rowcount = 0
        self._result: Any = None

    def __enter__(self) -> "FakeCursor":
        return self

    def __exit__(self, *args: Any) -> None:
        return None

    def execute(self, query: Any, params: Any = None) -> "FakeCursor":
        self.conn.executed.append((query, params))
        if self.conn.error is not None:
            raise self.conn.error
        self._result = self.conn.results.pop(0) if self.conn.results else None
        self.rowcount = self.conn.rowcount
        return self

    def fetchone(self) -> Any:
        return self._result


class FakeConnection:
    """Records statements and hands back queued ``fetchone`` results."""

    def __init__(self) -> None:
        self.executed: list[tuple[Any, Any]] = []
        self.results: list[Any] = []
        self.error: Exception | None = None
        self.rowcount = 1
        self.closed = False
        self.notifications: list[Any] = []
        self.notify_error: Exception | None = None

    def cursor(self) -> FakeCursor:
        return FakeCursor(self)

    def execute(self, query: Any, params: Any = None) -> FakeCursor:
        return self.cursor().execute(query, params)

    def transaction(self) -> Any:
        return nullcontext()

    def notifies(self, timeout: float | None = None, stop_after: int | None = None) -> Iterator[Any]:
        if self.notify_error is not None:
            raise self.notify_error
        pending, self.notifications = self.notifications[:stop_after], self.notifications[stop_after:]
        yield from pending

    def close(self) -> None:
        self.closed = True


class FakeDatabase:
    """Stands in for ``claimqueue.database.Database``."""

    def __init__(self) -> None:
        self.conn = FakeConnection()
        self.listen_conn = FakeConnection()
        self.transactions = 0
        self.connect_error: Exception | None = None

    @contextmanager
    def connection(self) -> Generator[FakeConnection, None, None]:
        yield self.conn

    @contextmanager
    def transaction(self) -> Generator[FakeConnection, None, None]:
        self.transactions += 1
        yield self.conn

    def connect(self, autocommit: bool = True) -> FakeConnection:
        if self.connect_error is not None:
            raise self.connect_error
        self.listen_conn.closed = False
        return self.listen_conn


@pytest.fixture
def memory_store() -> MemoryJobStore:
    return MemoryJobStore()


@pytest.fixture
def local_channel() -> Generator[LocalWakeChannel, None, None]:
    channel = LocalWakeChannel()
    yield channel
    channel.shutdown()


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()
