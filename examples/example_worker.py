"""Example: a producer and two workers sharing one Postgres queue.

Run ``claimqueue init-db`` first, then:

    CLAIMQUEUE_DATABASE_URL=postgresql://... python examples/example_worker.py
"""

import json
import logging
import threading
import time

from claimqueue import Database, JobQueue, QueueConfig, Worker
from claimqueue.log import configure_logging
from claimqueue.store import JobRecord

logger = logging.getLogger(__name__)


def resize_image(job: JobRecord) -> None:
    """Pretend to resize an image described by the job details."""
    details = json.loads(job["details"] or "{}")
    logger.info(f"Resizing {details.get('path')} to {details.get('width')}px")
    time.sleep(0.1)  # Simulate work


def main() -> None:
    config = QueueConfig()  # type: ignore[call-arg]
    configure_logging(config)

    with Database(config) as db:
        workers = [
            Worker(
                JobQueue.from_config(config, db),
                resize_image,
                worker_id=f"{config.worker_id}-{n}",
                poll_interval_seconds=config.poll_interval_seconds,
            )
            for n in range(2)
        ]
        threads = [threading.Thread(target=w.run, daemon=True) for w in workers]
        for t in threads:
            t.start()

        producer = JobQueue.from_config(config, db)
        producer.enqueue_many(
            json.dumps({"path": f"/images/{i}.png", "width": 640}) for i in range(25)
        )

        while producer.count() > 0:
            time.sleep(0.5)

        for w in workers:
            w.stop()
        for t in threads:
            t.join()


if __name__ == "__main__":
    main()
