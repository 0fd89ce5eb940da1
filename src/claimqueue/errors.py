"""Queue error taxonomy.

"No eligible job" is not an error: claim operations return ``None`` for it.
"""

from typing import Any


class QueueError(Exception):
    """Base exception for queue failures.

    Attributes:
        message: Human-readable error message
        retryable: Whether the caller may reasonably try again
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        retryable: bool = True,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize queue error."""
        super().__init__(message)
        self.message = message
        self.retryable = retryable
        self.details = details or {}

    def __str__(self) -> str:
        """String representation of error."""
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message


class StoreError(QueueError):
    """Job store operation failed (connectivity, constraint, timeout)."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        sqlstate: str | None = None,
    ) -> None:
        """Initialize store error."""
        details: dict[str, Any] = {}
        if operation:
            details["operation"] = operation
        if sqlstate:
            details["sqlstate"] = sqlstate
        super().__init__(message, retryable=True, details=details)


class ChannelError(QueueError):
    """Wake channel subscribe/publish/wait failed."""

    def __init__(self, message: str, channel: str | None = None) -> None:
        """Initialize channel error."""
        super().__init__(
            message,
            retryable=True,
            details={"channel": channel} if channel else {},
        )
