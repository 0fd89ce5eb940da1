"""In-process job store for single-process deployments and tests."""

import threading
from collections.abc import Callable, Generator, Iterable
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

from .store import JobRecord, JobStore

Predicate = Callable[[JobRecord], bool]
OrderKey = Callable[[JobRecord], Any]


class MemoryJobStore(JobStore):
    """Job store kept in a dict and serialized by a single lock.

    ``atomic()`` holds the lock for the whole block, which gives the claim
    sequence the same indivisibility a database transaction does.
    ``predicate`` is a callable filter and ``order`` a sort key.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._jobs: dict[int, JobRecord] = {}
        self._last_id = 0

    @contextmanager
    def atomic(self) -> Generator["MemoryJobStore", None, None]:
        with self._lock:
            yield self

    @contextmanager
    def _use(self, conn: Any) -> Generator[None, None, None]:
        if conn is not None:
            yield
        else:
            with self._lock:
                yield

    def _insert_locked(self, details: str | None) -> int:
        self._last_id += 1
        self._jobs[self._last_id] = {"id": self._last_id, "details": details, "locked_at": None}
        return self._last_id

    def insert(self, details: str | None, *, conn: Any = None) -> int:
        with self._use(conn):
            return self._insert_locked(details)

    def insert_many(self, details: Iterable[str | None], *, conn: Any = None) -> list[int]:
        with self._use(conn):
            return [self._insert_locked(item) for item in details]

    def count_eligible(self, *, conn: Any = None) -> int:
        with self._use(conn):
            return sum(1 for job in self._jobs.values() if job["locked_at"] is None)

    def count(self, *, conn: Any = None) -> int:
        with self._use(conn):
            return len(self._jobs)

    def try_lock_one(
        self,
        predicate: Predicate | None = None,
        order: OrderKey | None = None,
        offset: int = 0,
        limit: int = 1,
        *,
        conn: Any = None,
    ) -> JobRecord | None:
        if offset < 0:
            raise ValueError("offset must be >= 0")
        if limit < 1:
            raise ValueError("limit must be >= 1")

        with self._use(conn):
            eligible = [
                job
                for job in self._jobs.values()
                if job["locked_at"] is None and (predicate is None or predicate(job))
            ]
            eligible.sort(key=order or (lambda job: job["id"]))
            window = eligible[offset : offset + limit]
            if not window:
                return None
            job = window[0]
            job["locked_at"] = datetime.now(UTC)
            return dict(job)  # type: ignore[return-value]

    def get(self, job_id: int, *, conn: Any = None) -> JobRecord | None:
        with self._use(conn):
            job = self._jobs.get(job_id)
            return dict(job) if job is not None else None  # type: ignore[return-value]

    def delete(self, job_id: int, *, conn: Any = None) -> bool:
        with self._use(conn):
            return self._jobs.pop(job_id, None) is not None
