"""
claimqueue

Durable Postgres work queue. Many workers claim jobs from one table through a
contention-aware row-locking routine, woken by LISTEN/NOTIFY.
"""

from .claim import ClaimEngine, FunctionClaimEngine, choose_offset
from .config import QueueConfig
from .database import Database
from .errors import ChannelError, QueueError, StoreError
from .memory import MemoryJobStore
from .queue import JobQueue
from .store import JobRecord, JobStore, PostgresJobStore
from .wake import LocalWakeChannel, PostgresWakeChannel, WakeChannel
from .worker import Worker

__all__ = [
    "ChannelError",
    "ClaimEngine",
    "Database",
    "FunctionClaimEngine",
    "JobQueue",
    "JobRecord",
    "JobStore",
    "LocalWakeChannel",
    "MemoryJobStore",
    "PostgresJobStore",
    "PostgresWakeChannel",
    "QueueConfig",
    "QueueError",
    "StoreError",
    "WakeChannel",
    "Worker",
    "choose_offset",
]
__version__ = "0.1.0"
