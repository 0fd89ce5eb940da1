"""Job store: durable job records and the locked-claim primitive."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Generator, Iterable, Iterator
from contextlib import AbstractContextManager, contextmanager
from datetime import datetime
from typing import Any, TypedDict

import psycopg
from psycopg import sql

from .database import Database
from .errors import StoreError

logger = logging.getLogger(__name__)


class JobRecord(TypedDict):
    """Job row as stored in the jobs table."""

    id: int
    details: str | None
    locked_at: datetime | None


class JobStore(ABC):
    """Persistence for job records.

    Every operation accepts an optional ``conn`` handle obtained from
    ``atomic()``. Operations given the same handle run as one indivisible unit;
    operations without one run in their own unit.
    """

    @abstractmethod
    def atomic(self) -> AbstractContextManager[Any]:
        """Open an atomic unit and yield the handle that binds operations to it."""

    @abstractmethod
    def insert(self, details: str | None, *, conn: Any = None) -> int:
        """Append a new eligible job and return its id."""

    @abstractmethod
    def insert_many(self, details: Iterable[str | None], *, conn: Any = None) -> list[int]:
        """Append several eligible jobs in one unit and return their ids in order."""

    @abstractmethod
    def count_eligible(self, *, conn: Any = None) -> int:
        """Count jobs whose ``locked_at`` is still null."""

    @abstractmethod
    def count(self, *, conn: Any = None) -> int:
        """Count all jobs, claimed or not."""

    @abstractmethod
    def try_lock_one(
        self,
        predicate: Any = None,
        order: Any = None,
        offset: int = 0,
        limit: int = 1,
        *,
        conn: Any = None,
    ) -> JobRecord | None:
        """Lock and claim at most one eligible job.

        Selects eligible rows matching ``predicate`` sorted by ``order``, skips
        ``offset`` of them, locks the next one, sets its ``locked_at`` and
        returns the updated record. Returns ``None`` if no row is found.
        """

    @abstractmethod
    def get(self, job_id: int, *, conn: Any = None) -> JobRecord | None:
        """Fetch a job by id."""

    @abstractmethod
    def delete(self, job_id: int, *, conn: Any = None) -> bool:
        """Remove a job (completion). Returns whether a row was deleted."""


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    """Translate driver exceptions into StoreError."""
    try:
        yield
    except psycopg.Error as e:
        sqlstate = getattr(e, "sqlstate", None)
        logger.debug("Store operation %s failed: %s", operation, e)
        raise StoreError(f"{operation} failed: {e}", operation=operation, sqlstate=sqlstate) from e


class PostgresJobStore(JobStore):
    """Job store over a PostgreSQL table ``(id, details, locked_at)``.

    ``predicate`` and ``order`` passed to ``try_lock_one`` are
    ``psycopg.sql`` composables (for example ``sql.SQL("details LIKE 'x%%'")``).
    """

    def __init__(self, db: Database, table: str = "jobs", skip_locked: bool = False) -> None:
        self.db = db
        self.table = table
        self.skip_locked = skip_locked
        self._table = sql.Identifier(table)

    @contextmanager
    def atomic(self) -> Generator[psycopg.Connection[dict[str, Any]], None, None]:
        with _store_errors("transaction"), self.db.transaction() as conn:
            yield conn

    @contextmanager
    def _use(self, conn: Any, operation: str) -> Generator[psycopg.Connection[Any], None, None]:
        """Use the caller's handle, or a fresh pooled transaction."""
        with _store_errors(operation):
            if conn is not None:
                yield conn
            else:
                with self.db.transaction() as own:
                    yield own

    def insert(self, details: str | None, *, conn: Any = None) -> int:
        query = sql.SQL("INSERT INTO {table} (details) VALUES (%s) RETURNING id").format(
            table=self._table
        )
        with self._use(conn, "insert") as c, c.cursor() as cur:
            cur.execute(query, (details,))
            row = cur.fetchone()
        assert row is not None
        return int(row["id"])

    def insert_many(self, details: Iterable[str | None], *, conn: Any = None) -> list[int]:
        query = sql.SQL("INSERT INTO {table} (details) VALUES (%s) RETURNING id").format(
            table=self._table
        )
        ids: list[int] = []
        with self._use(conn, "insert_many") as c, c.cursor() as cur:
            for item in details:
                cur.execute(query, (item,))
                row = cur.fetchone()
                assert row is not None
                ids.append(int(row["id"]))
        return ids

    def count_eligible(self, *, conn: Any = None) -> int:
        query = sql.SQL("SELECT count(*) AS n FROM {table} WHERE locked_at IS NULL").format(
            table=self._table
        )
        with self._use(conn, "count_eligible") as c, c.cursor() as cur:
            cur.execute(query)
            row = cur.fetchone()
        return int(row["n"]) if row else 0

    def count(self, *, conn: Any = None) -> int:
        query = sql.SQL("SELECT count(*) AS n FROM {table}").format(table=self._table)
        with self._use(conn, "count") as c, c.cursor() as cur:
            cur.execute(query)
            row = cur.fetchone()
        return int(row["n"]) if row else 0

    def try_lock_one(
        self,
        predicate: sql.Composable | None = None,
        order: sql.Composable | None = None,
        offset: int = 0,
        limit: int = 1,
        *,
        conn: Any = None,
    ) -> JobRecord | None:
        if offset < 0:
            raise ValueError("offset must be >= 0")
        if limit < 1:
            raise ValueError("limit must be >= 1")

        select = sql.SQL(
            "SELECT id FROM {table}"
            " WHERE locked_at IS NULL AND ({predicate})"
            " ORDER BY {order}"
            " LIMIT %s OFFSET %s"
            " FOR UPDATE{skip}"
        ).format(
            table=self._table,
            predicate=predicate if predicate is not None else sql.SQL("TRUE"),
            order=order if order is not None else sql.SQL("id ASC"),
            skip=sql.SQL(" SKIP LOCKED" if self.skip_locked else ""),
        )
        # The row lock from the SELECT is held until this transaction ends, and
        # the UPDATE re-checks eligibility in case another claimer won first.
        update = sql.SQL(
            "UPDATE {table} SET locked_at = CURRENT_TIMESTAMP"
            " WHERE id = %s AND locked_at IS NULL"
            " RETURNING id, details, locked_at"
        ).format(table=self._table)

        with self._use(conn, "try_lock_one") as c, c.cursor() as cur:
            cur.execute(select, (limit, offset))
            candidate = cur.fetchone()
            if candidate is None:
                return None
            cur.execute(update, (candidate["id"],))
            job = cur.fetchone()
        return job  # type: ignore[return-value]

    def call_lock_head(self, function: str, window: int) -> JobRecord | None:
        """Claim through the server-side routine installed by the schema bootstrap."""
        query = sql.SQL("SELECT id, details, locked_at FROM {function}(%s)").format(
            function=sql.Identifier(function)
        )
        with self._use(None, "lock_head") as c, c.cursor() as cur:
            cur.execute(query, (window,))
            job = cur.fetchone()
        return job  # type: ignore[return-value]

    def get(self, job_id: int, *, conn: Any = None) -> JobRecord | None:
        query = sql.SQL("SELECT id, details, locked_at FROM {table} WHERE id = %s").format(
            table=self._table
        )
        with self._use(conn, "get") as c, c.cursor() as cur:
            cur.execute(query, (job_id,))
            job = cur.fetchone()
        return job  # type: ignore[return-value]

    def delete(self, job_id: int, *, conn: Any = None) -> bool:
        query = sql.SQL("DELETE FROM {table} WHERE id = %s").format(table=self._table)
        with self._use(conn, "delete") as c, c.cursor() as cur:
            cur.execute(query, (job_id,))
            deleted = cur.rowcount
        return deleted > 0
