"""Wake channel: producers signal idle consumers that work may exist.

Delivery is at-least-once and signals may coalesce. A consumer that subscribes
after a publish can miss that signal, so callers always bound ``wait()`` with a
timeout and claim afterwards whether or not a signal arrived.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any

import psycopg
from psycopg import sql

from .database import Database
from .errors import ChannelError

logger = logging.getLogger(__name__)


class WakeChannel(ABC):
    """Base class for wake channels."""

    @abstractmethod
    def subscribe(self) -> None:
        """Start receiving signals. Calling it again while subscribed is a no-op."""

    @abstractmethod
    def publish(self, conn: Any = None) -> None:
        """Send a zero-payload wake signal.

        ``conn`` binds the signal to an open store unit, so it is delivered
        only once that unit commits.
        """

    @abstractmethod
    def wait(self, timeout: float) -> bool:
        """Block until a signal arrives or ``timeout`` seconds pass.

        Returns True if woken by a signal, False on timeout.
        """

    @property
    @abstractmethod
    def subscribed(self) -> bool:
        """Whether ``wait()`` can currently be called."""

    @abstractmethod
    def close(self) -> None:
        """Drop the subscription."""

    def __enter__(self) -> "WakeChannel":
        self.subscribe()
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


class PostgresWakeChannel(WakeChannel):
    """LISTEN/NOTIFY channel.

    Subscribers hold a dedicated autocommit connection; publishers use a pooled
    connection or the caller's transaction.
    """

    def __init__(self, db: Database, channel: str = "jobs") -> None:
        self.db = db
        self.channel = channel
        self._listen_conn: psycopg.Connection[Any] | None = None

    @property
    def subscribed(self) -> bool:
        return self._listen_conn is not None and not self._listen_conn.closed

    def subscribe(self) -> None:
        if self.subscribed:
            return
        try:
            conn = self.db.connect(autocommit=True)
        except psycopg.Error as e:
            raise ChannelError(f"Failed to connect listener: {e}", self.channel) from e
        try:
            conn.execute(sql.SQL("LISTEN {}").format(sql.Identifier(self.channel)))
        except psycopg.Error as e:
            conn.close()
            raise ChannelError(f"LISTEN failed: {e}", self.channel) from e
        self._listen_conn = conn
        logger.debug("Listening on channel %s", self.channel)

    def publish(self, conn: Any = None) -> None:
        try:
            if conn is not None:
                conn.execute("SELECT pg_notify(%s, '')", (self.channel,))
            else:
                with self.db.connection() as own:
                    own.execute("SELECT pg_notify(%s, '')", (self.channel,))
        except psycopg.Error as e:
            raise ChannelError(f"NOTIFY failed: {e}", self.channel) from e

    def wait(self, timeout: float) -> bool:
        if not self.subscribed:
            raise ChannelError("Not subscribed", self.channel)
        assert self._listen_conn is not None
        woken = False
        try:
            for _notify in self._listen_conn.notifies(timeout=timeout, stop_after=1):
                woken = True
        except psycopg.Error as e:
            # The session is gone; a later subscribe() reconnects.
            self.close()
            raise ChannelError(f"Lost subscription: {e}", self.channel) from e
        return woken

    def close(self) -> None:
        if self._listen_conn is not None:
            try:
                self._listen_conn.close()
            finally:
                self._listen_conn = None


class LocalWakeChannel(WakeChannel):
    """Single-process fan-out built on ``threading.Condition``.

    Each publish bumps a generation counter; every subscribed thread is woken
    once per change it has not yet seen, so several publishes between two
    waits coalesce into one wake. Subscriptions are per thread: ``close()``
    drops the calling thread's, ``shutdown()`` ends the channel for all.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._generation = 0
        self._closed = False
        self._local = threading.local()

    @property
    def subscribed(self) -> bool:
        return not self._closed and getattr(self._local, "seen", None) is not None

    def subscribe(self) -> None:
        with self._cond:
            if self._closed:
                raise ChannelError("Channel closed")
            if getattr(self._local, "seen", None) is None:
                self._local.seen = self._generation

    def publish(self, conn: Any = None) -> None:
        with self._cond:
            if self._closed:
                raise ChannelError("Channel closed")
            self._generation += 1
            self._cond.notify_all()

    def wait(self, timeout: float) -> bool:
        seen = getattr(self._local, "seen", None)
        if seen is None or self._closed:
            raise ChannelError("Not subscribed")
        with self._cond:
            self._cond.wait_for(lambda: self._generation != seen or self._closed, timeout)
            woken = self._generation != seen
            self._local.seen = self._generation
        return woken

    def close(self) -> None:
        self._local.seen = None

    def shutdown(self) -> None:
        """Close the channel and release every waiting thread."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()
