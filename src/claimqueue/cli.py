"""claimqueue CLI."""

import importlib
import logging
import os
import sys
import traceback

from pydantic import ValidationError

from .config import QueueConfig
from .database import Database
from .errors import QueueError
from .log import configure_logging
from .queue import JobQueue
from .schema import init_db
from .store import JobRecord
from .worker import JobHandler, Worker

logger = logging.getLogger("claimqueue")

EXIT_CODES = {"success": 0, "validation": 2, "failure": 1}
DEBUG_ENABLED = os.getenv("DEBUG", "").lower() in {"1", "true"}

HELP = """
claimqueue CLI

Usage:
  claimqueue <command> [options]

Commands:
  init-db                 Drop and recreate the jobs table and lock_head() routine
  enqueue <details>...    Insert one job per argument and wake idle workers
  count                   Print total and eligible job counts
  work [options]          Run a worker

Work options:
  --once                  Drain the queue once then exit (default: false)
  --interval=<sec>        Poll interval in seconds (default: from environment)
  --handler=<mod:func>    Callable receiving each job (default: log the job)

Environment:
  CLAIMQUEUE_DATABASE_URL          PostgreSQL connection string (required)
  CLAIMQUEUE_WORKER_ID             Worker ID (default: worker-<pid>)
  CLAIMQUEUE_TABLE_NAME            Jobs table (default: jobs)
  CLAIMQUEUE_CHANNEL_NAME          LISTEN/NOTIFY channel (default: jobs)
  CLAIMQUEUE_CONTENTION_WINDOW     Random claim window size (default: 10)
  CLAIMQUEUE_CLAIM_MODE            transaction | function (default: transaction)
  CLAIMQUEUE_POLL_INTERVAL_SECONDS Poll fallback in seconds (default: 5)
  CLAIMQUEUE_LOG_FORMAT            text | json (default: text)

Examples:
  CLAIMQUEUE_DATABASE_URL=... claimqueue init-db
  CLAIMQUEUE_DATABASE_URL=... claimqueue enqueue '{"task": "resize"}'
  CLAIMQUEUE_DATABASE_URL=... claimqueue work --handler=myapp.jobs:handle
"""


def show_help() -> None:
    """Print CLI help."""
    print(HELP)


def log_job(job: JobRecord) -> None:
    """Default handler: record the claimed job and return."""
    logger.info(f"Job {job['id']}: {job['details']}", extra={"job_id": job["id"]})


def load_handler(path: str) -> JobHandler:
    """Resolve ``module:function`` to a callable."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Handler must look like module:function, got {path!r}")
    handler = getattr(importlib.import_module(module_name), attr)
    if not callable(handler):
        raise ValueError(f"Handler {path!r} is not callable")
    return handler  # type: ignore[no-any-return]


def log_unexpected_error(message: str, error: Exception) -> None:
    """Log an unexpected error with optional stack trace."""
    logger.error(f"{message}: {error}")
    if DEBUG_ENABLED:
        logger.error(f"Stack trace:\n{traceback.format_exc()}")


def run_command(command: str, args: list[str], config: QueueConfig) -> int:
    """Execute a parsed command against an open pool. Returns an exit code."""
    options = [a for a in args if a.startswith("--")]
    positional = [a for a in args if not a.startswith("--")]

    handler: JobHandler = log_job
    poll_interval = config.poll_interval_seconds
    for opt in options:
        if opt.startswith("--interval="):
            try:
                poll_interval = float(opt.split("=", 1)[1])
            except ValueError:
                logger.error("Invalid interval value")
                return EXIT_CODES["validation"]
            if poll_interval <= 0:
                logger.error("Interval must be positive")
                return EXIT_CODES["validation"]
        elif opt.startswith("--handler="):
            try:
                handler = load_handler(opt.split("=", 1)[1])
            except (ImportError, AttributeError, ValueError) as e:
                logger.error(f"Invalid handler: {e}")
                return EXIT_CODES["validation"]
        elif opt != "--once":
            logger.error(f"Unknown option: {opt}")
            return EXIT_CODES["validation"]

    if command == "enqueue" and not positional:
        logger.error("enqueue needs at least one job details argument")
        return EXIT_CODES["validation"]

    with Database(config) as db:
        if command == "init-db":
            init_db(db, config.table_name)
            return EXIT_CODES["success"]

        queue = JobQueue.from_config(config, db)

        if command == "enqueue":
            ids = queue.enqueue_many(positional)
            print(" ".join(str(i) for i in ids))
        elif command == "count":
            print(f"total={queue.count()} eligible={queue.count_eligible()}")
        else:
            worker = Worker(
                queue,
                handler,
                worker_id=config.worker_id,
                poll_interval_seconds=poll_interval,
            )
            if "--once" in options:
                logger.info("Running worker once")
                claimed = worker.run_once()
                logger.info(f"Worker completed (claimed={claimed})")
            else:
                worker.install_signal_handlers()
                worker.run()
    return EXIT_CODES["success"]


def main(argv: list[str] | None = None) -> None:
    """Main CLI entrypoint."""
    args = sys.argv[1:] if argv is None else argv
    if not args or "--help" in args or "-h" in args:
        show_help()
        sys.exit(EXIT_CODES["success"])

    command, rest = args[0], args[1:]
    if command not in {"init-db", "enqueue", "count", "work"}:
        print(f"Unknown command: {command}", file=sys.stderr)
        show_help()
        sys.exit(EXIT_CODES["validation"])

    try:
        config = QueueConfig()  # type: ignore[call-arg]
    except ValidationError as e:
        logging.basicConfig(level=logging.ERROR)
        logger.error(f"Configuration error: {e}")
        sys.exit(EXIT_CODES["validation"])

    configure_logging(config)

    try:
        sys.exit(run_command(command, rest, config))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        sys.exit(EXIT_CODES["success"])
    except QueueError as e:
        logger.error(str(e))
        sys.exit(EXIT_CODES["failure"])
    except Exception as e:
        log_unexpected_error("claimqueue crashed", e)
        sys.exit(EXIT_CODES["failure"])


if __name__ == "__main__":
    main()
