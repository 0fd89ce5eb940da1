"""PostgreSQL connection pool owned by the process."""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from .config import QueueConfig
from .errors import StoreError

logger = logging.getLogger(__name__)


class Database:
    """Explicit connection pool for the job store and wake channel.

    The pool is created closed; call ``open()`` at startup and ``close()`` at
    shutdown (or use the instance as a context manager).
    """

    def __init__(self, config: QueueConfig) -> None:
        """Initialize (but do not open) the connection pool."""
        self.config = config
        self.pool = ConnectionPool(
            conninfo=config.database_url_str,
            min_size=config.pool_min_size,
            max_size=config.pool_max_size,
            timeout=config.pool_timeout_seconds,
            configure=self._configure_connection,
            open=False,
        )

    def __enter__(self) -> "Database":
        self.open()
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def _configure_connection(self, conn: psycopg.Connection[Any]) -> None:
        """Per-connection session setup, run once when the pool creates it."""
        if not self.config.logging_enabled:
            conn.execute("SET client_min_messages TO 'warning'")
            conn.commit()

    def open(self) -> None:
        """Open the pool, waiting until ``pool_min_size`` connections exist."""
        try:
            self.pool.open(wait=self.config.pool_min_size > 0, timeout=self.config.pool_timeout_seconds)
        except psycopg.Error as e:
            raise StoreError(f"Failed to open connection pool: {e}", operation="open") from e
        logger.debug(
            "Connection pool open (min=%s, max=%s)",
            self.config.pool_min_size,
            self.config.pool_max_size,
        )

    @contextmanager
    def connection(self) -> Generator[psycopg.Connection[dict[str, Any]], None, None]:
        """Get a connection from the pool.

        The pool commits on clean exit and rolls back if the block raises.
        """
        with self.pool.connection() as conn:
            conn.row_factory = dict_row
            yield conn

    @contextmanager
    def transaction(self) -> Generator[psycopg.Connection[dict[str, Any]], None, None]:
        """Get a pooled connection inside an explicit transaction block."""
        with self.connection() as conn, conn.transaction():
            yield conn

    def connect(self, autocommit: bool = True) -> psycopg.Connection[dict[str, Any]]:
        """Open a dedicated connection outside the pool.

        LISTEN registrations live as long as the session, so subscribers use
        their own connection rather than a pooled one.
        """
        conn = psycopg.connect(
            self.config.database_url_str,
            autocommit=autocommit,
            row_factory=dict_row,
        )
        if not self.config.logging_enabled:
            conn.execute("SET client_min_messages TO 'warning'")
            if not autocommit:
                conn.commit()
        return conn

    def health_check(self) -> bool:
        """Check database connectivity."""
        try:
            with self.connection() as conn, conn.cursor() as cur:
                cur.execute("SELECT 1")
                return True
        except psycopg.Error:
            return False

    def close(self) -> None:
        """Close connection pool gracefully."""
        self.pool.close()
        logger.debug("Connection pool closed")
