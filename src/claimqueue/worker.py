"""Worker loop: wait for a wake signal, claim, execute, delete."""

import logging
import signal
import time
from collections.abc import Callable
from typing import Any

from .errors import ChannelError, QueueError
from .queue import JobQueue
from .store import JobRecord

logger = logging.getLogger(__name__)

JobHandler = Callable[[JobRecord], Any]


class Worker:
    """Job worker with wake-or-poll waiting, claiming, and execution.

    Handles:
    - Graceful shutdown (SIGTERM/SIGINT)
    - Wake channel subscription, with a bounded poll when it is unavailable
    - Draining: claims repeatedly until the queue reports no job
    - Completion: a job is deleted after its handler returns

    A handler that raises leaves its job claimed; requeueing failed jobs is
    up to whoever operates the queue.
    """

    def __init__(
        self,
        queue: JobQueue,
        handler: JobHandler,
        *,
        worker_id: str = "worker",
        poll_interval_seconds: float = 5.0,
    ) -> None:
        """Initialize worker."""
        self.queue = queue
        self.handler = handler
        self.worker_id = worker_id
        self.poll_interval_seconds = poll_interval_seconds
        self.shutdown_requested = False
        self.processed = 0
        self.failed = 0

    def _handle_shutdown(self, signum: int, frame: Any) -> None:
        """Handle shutdown signals gracefully."""
        logger.info(f"Received signal {signum}, initiating graceful shutdown...")
        self.shutdown_requested = True

    def install_signal_handlers(self) -> None:
        signal.signal(signal.SIGTERM, self._handle_shutdown)
        signal.signal(signal.SIGINT, self._handle_shutdown)

    def stop(self) -> None:
        self.shutdown_requested = True

    def _execute_job(self, job: JobRecord) -> bool:
        """Execute a single claimed job. Returns whether it succeeded."""
        start_time = time.monotonic()
        extra = {"worker_id": self.worker_id, "job_id": job["id"]}
        try:
            self.handler(job)
        except Exception:
            self.failed += 1
            logger.exception(f"Job {job['id']} failed; leaving it locked", extra=extra)
            return False

        self.queue.delete(job)
        self.processed += 1
        duration_ms = int((time.monotonic() - start_time) * 1000)
        logger.info(f"Job {job['id']} completed (duration={duration_ms}ms)", extra=extra)
        return True

    def run_once(self) -> int:
        """Claim and execute jobs until none is found. Returns how many were claimed."""
        claimed = 0
        while not self.shutdown_requested:
            job = self.queue.lock_head()
            if job is None:
                break
            claimed += 1
            self._execute_job(job)
        return claimed

    def _wait_for_work(self) -> None:
        """Block until woken or the poll interval elapses."""
        channel = self.queue.channel
        if channel is None:
            time.sleep(self.poll_interval_seconds)
            return
        try:
            if not channel.subscribed:
                channel.subscribe()
            channel.wait(self.poll_interval_seconds)
        except ChannelError as e:
            logger.warning(f"Wake channel unavailable, polling instead: {e}")
            time.sleep(self.poll_interval_seconds)

    def run(self) -> None:
        """Run the worker loop until shutdown is requested."""
        logger.info(
            f"Worker {self.worker_id} starting (poll={self.poll_interval_seconds}s)",
            extra={"worker_id": self.worker_id},
        )
        channel = self.queue.channel
        try:
            if channel is not None:
                # Subscribe before the first claim so nothing published after
                # it can be missed.
                try:
                    channel.subscribe()
                except ChannelError as e:
                    logger.warning(f"Could not subscribe to wake channel: {e}")

            while not self.shutdown_requested:
                try:
                    self.run_once()
                except QueueError as e:
                    logger.error(f"Claim failed: {e}", extra={"worker_id": self.worker_id})
                    time.sleep(self.poll_interval_seconds)
                    continue

                if not self.shutdown_requested:
                    self._wait_for_work()

        finally:
            logger.info("Shutting down worker...")
            if channel is not None:
                channel.close()
            logger.info(
                f"Worker shutdown complete (processed={self.processed}, failed={self.failed})"
            )
