"""Contention-aware job claiming ("lock_head").

When many workers race for a small set of eligible jobs, always taking the
oldest one makes them collide on the same row. Each claim instead picks a
random row among the ``window`` oldest eligible jobs once at least ``window``
jobs are waiting. Below that, the oldest job is taken.
"""

import logging
import random

from .store import JobRecord, JobStore, PostgresJobStore

logger = logging.getLogger(__name__)

DEFAULT_CONTENTION_WINDOW = 10


def choose_offset(
    job_count: int,
    window: int = DEFAULT_CONTENTION_WINDOW,
    rng: random.Random | None = None,
) -> int:
    """Pick how many of the oldest eligible jobs to skip.

    Returns 0 when ``job_count < window``; otherwise a uniform integer in
    ``[0, window - 1]``.
    """
    if window < 1:
        raise ValueError("window must be >= 1")
    if job_count < window:
        return 0
    return (rng or random).randint(0, window - 1)


class ClaimEngine:
    """Claims one job per call as a single atomic unit against a job store.

    Count, offset choice and the locked update share one ``store.atomic()``
    block. If anything fails inside it, the unit is abandoned with no
    ``locked_at`` written.
    """

    def __init__(
        self,
        store: JobStore,
        window: int = DEFAULT_CONTENTION_WINDOW,
        rng: random.Random | None = None,
    ) -> None:
        if window < 1:
            raise ValueError("window must be >= 1")
        self.store = store
        self.window = window
        self.rng = rng or random.Random()

    def lock_head(self) -> JobRecord | None:
        """Claim one eligible job, or return ``None`` if none was found."""
        with self.store.atomic() as conn:
            job_count = self.store.count_eligible(conn=conn)
            relative_top = choose_offset(job_count, self.window, self.rng)
            job = self.store.try_lock_one(offset=relative_top, conn=conn)

        if job is None:
            logger.debug("No job at offset %s (eligible=%s)", relative_top, job_count)
        else:
            logger.debug(
                "Claimed job %s at offset %s (eligible=%s)", job["id"], relative_top, job_count
            )
        return job


class FunctionClaimEngine(ClaimEngine):
    """Claims through the ``lock_head`` routine installed in the database.

    The routine runs the same count, offset and locked-update steps inside the
    server, in one statement.
    """

    def __init__(
        self,
        store: PostgresJobStore,
        function: str = "lock_head",
        window: int = DEFAULT_CONTENTION_WINDOW,
    ) -> None:
        super().__init__(store, window)
        self.store: PostgresJobStore = store
        self.function = function

    def lock_head(self) -> JobRecord | None:
        job = self.store.call_lock_head(self.function, self.window)
        if job is not None:
            logger.debug("Claimed job %s via %s()", job["id"], self.function)
        return job
