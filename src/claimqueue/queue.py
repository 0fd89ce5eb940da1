"""Producer/consumer facade tying the store, claim engine and wake channel together."""

import logging
from collections.abc import Iterable

from .claim import ClaimEngine, FunctionClaimEngine
from .config import QueueConfig
from .database import Database
from .schema import lock_head_function_name
from .store import JobRecord, JobStore, PostgresJobStore
from .wake import PostgresWakeChannel, WakeChannel

logger = logging.getLogger(__name__)


class JobQueue:
    """A single work queue.

    Producers call ``enqueue``; consumers call ``lock_head`` and ``delete``
    the job once they have finished with it.
    """

    def __init__(
        self,
        store: JobStore,
        engine: ClaimEngine | None = None,
        channel: WakeChannel | None = None,
    ) -> None:
        self.store = store
        self.engine = engine or ClaimEngine(store)
        self.channel = channel

    @classmethod
    def from_config(cls, config: QueueConfig, db: Database) -> "JobQueue":
        """Build a Postgres-backed queue on an already created pool."""
        store = PostgresJobStore(db, table=config.table_name, skip_locked=config.skip_locked)
        engine: ClaimEngine
        if config.claim_mode == "function":
            engine = FunctionClaimEngine(
                store,
                function=lock_head_function_name(config.table_name),
                window=config.contention_window,
            )
        else:
            engine = ClaimEngine(store, window=config.contention_window)
        return cls(store, engine, PostgresWakeChannel(db, config.channel_name))

    def enqueue(self, details: str | None) -> int:
        """Insert one job and signal waiting consumers when it commits."""
        with self.store.atomic() as conn:
            job_id = self.store.insert(details, conn=conn)
            if self.channel is not None:
                self.channel.publish(conn)
        logger.debug("Enqueued job %s", job_id)
        return job_id

    def enqueue_many(self, details: Iterable[str | None]) -> list[int]:
        """Insert a batch of jobs with a single wake signal."""
        with self.store.atomic() as conn:
            ids = self.store.insert_many(details, conn=conn)
            if ids and self.channel is not None:
                self.channel.publish(conn)
        logger.debug("Enqueued %s jobs", len(ids))
        return ids

    def lock_head(self) -> JobRecord | None:
        """Claim one job; ``None`` means nothing was eligible at the chosen offset."""
        return self.engine.lock_head()

    def delete(self, job: JobRecord | int) -> bool:
        job_id = job if isinstance(job, int) else job["id"]
        return self.store.delete(job_id)

    def count(self) -> int:
        return self.store.count()

    def count_eligible(self) -> int:
        return self.store.count_eligible()
