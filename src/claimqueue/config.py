"""Strict environment validation for queue configuration."""

import os
import re
from typing import Literal

from pydantic import Field, PostgresDsn, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_IDENTIFIER_RE = re.compile(r"^[a-z_][a-z0-9_]{0,62}$")


class QueueConfig(BaseSettings):
    """Queue configuration with strict validation.

    Values are read from ``CLAIMQUEUE_*`` environment variables (or ``.env``).
    Fails fast on startup if configuration is invalid.
    """

    model_config = SettingsConfigDict(
        env_prefix="CLAIMQUEUE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="forbid",  # Reject unknown settings to catch typos
    )

    # Database connection (required)
    database_url: PostgresDsn = Field(
        description="PostgreSQL connection string",
    )

    # Worker identity
    worker_id: str = Field(
        default_factory=lambda: f"worker-{os.getpid()}",
        min_length=1,
        max_length=100,
        description="Worker identifier used in log context",
    )

    # Relation and wake channel names
    table_name: str = Field(default="jobs", description="Jobs table name")
    channel_name: str = Field(default="jobs", description="LISTEN/NOTIFY channel name")

    # Claim protocol
    contention_window: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Number of oldest eligible jobs a claim may randomly pick from",
    )

    claim_mode: Literal["transaction", "function"] = Field(
        default="transaction",
        description="Claim via a client-side transaction or the installed lock_head() routine",
    )

    skip_locked: bool = Field(
        default=False,
        description="Use FOR UPDATE SKIP LOCKED instead of blocking row locks",
    )

    # Polling fallback when no wake signal arrives
    poll_interval_seconds: float = Field(
        default=5.0,
        ge=0.1,
        le=300,
        description="Upper bound on how long an idle worker waits before polling",
    )

    # Connection pool
    pool_min_size: int = Field(default=1, ge=0, le=100)
    pool_max_size: int = Field(default=5, ge=1, le=100)
    pool_timeout_seconds: float = Field(default=30.0, gt=0, le=300)

    # Logging
    logging_enabled: bool = Field(
        default=False,
        description="Keep server NOTICE messages; when false sessions are set to 'warning'",
    )
    log_format: Literal["text", "json"] = Field(default="text")

    # Environment
    environment: Literal["development", "production", "test"] = Field(
        default="development",
        description="Runtime environment",
    )

    @field_validator("worker_id")
    @classmethod
    def validate_worker_id(cls, v: str) -> str:
        """Ensure worker_id is URL-safe and descriptive."""
        if not v.replace("-", "").replace("_", "").isalnum():
            raise ValueError("worker_id must be alphanumeric with hyphens/underscores only")
        return v

    @field_validator("table_name", "channel_name")
    @classmethod
    def validate_identifier(cls, v: str) -> str:
        """Only plain lowercase SQL identifiers are accepted."""
        if not _IDENTIFIER_RE.match(v):
            raise ValueError("must be a lowercase SQL identifier (letters, digits, underscores)")
        return v

    @field_validator("pool_max_size")
    @classmethod
    def validate_pool_size(cls, v: int, info: ValidationInfo) -> int:
        """Reject a pool that could never reach its minimum size."""
        min_size = info.data.get("pool_min_size")
        if min_size is not None and v < min_size:
            raise ValueError("pool_max_size must be >= pool_min_size")
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    @property
    def database_url_str(self) -> str:
        """Get database URL as string (for psycopg)."""
        return str(self.database_url)
